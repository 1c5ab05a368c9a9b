"""Command surface used by host shells.

Objective:
    Compose the core components (token store, device-flow authenticator,
    GitHub client) behind the small set of operations the CLI and the web UI
    call:

    1) Read the stored credential
    2) Run the device flow, either blocking or on a background worker
    3) Fetch and classify pull requests
    4) Open URLs in the default browser

Responsibilities:
    - Build every component from one :class:`prism.config.Settings`.
    - Run background device flows on a single worker thread so the host stays
      responsive while polling.
    - Reject a second flow while one is running.
    - Cancel polling when the host shuts down.

High-level call tree:
    - :class:`PrismOrchestrator`
        - :meth:`PrismOrchestrator.get_stored_credential`
            - :meth:`TokenStore.load`
        - :meth:`PrismOrchestrator.start_auth_flow`
            - :meth:`DeviceFlowAuthenticator.start_flow`
        - :meth:`PrismOrchestrator.begin_auth_flow`
            - worker thread: :meth:`DeviceFlowAuthenticator.start_flow`
        - :meth:`PrismOrchestrator.auth_status`
        - :meth:`PrismOrchestrator.wait_for_auth`
        - :meth:`PrismOrchestrator.cancel_auth_flow`
        - :meth:`PrismOrchestrator.fetch_pull_requests`
            - :meth:`GitHubClient.fetch_pull_requests`
        - :meth:`PrismOrchestrator.open_external_url`
        - :meth:`PrismOrchestrator.shutdown`

Operational notes:
    - The orchestrator does not cache pull requests between calls. Every
      fetch is a full snapshot.
"""

import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from .auth import DeviceFlowAuthenticator, FlowState, PromptCallback
from .browser import open_url
from .config import Settings, get_settings
from .errors import ConflictError
from .github_client import GitHubClient
from .models import AuthStatus, DeviceCodePrompt, PullRequestData
from .token_store import TokenStore

logger = logging.getLogger(__name__)

GITHUB_PULLS_URL = "https://github.com/pulls"


class PrismOrchestrator:
    """
    Entry point for host shells.

    This class is intentionally "glue" code: it connects the authenticator
    and the GitHub client without embedding protocol or classification rules.

    Attributes:
        settings: Application settings.
        token_store: Token persistence.
        auth: Device-flow authenticator.
        github: GitHub GraphQL client.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        token_store: Optional[TokenStore] = None,
        auth: Optional[DeviceFlowAuthenticator] = None,
        github: Optional[GitHubClient] = None,
        open_browser: Optional[Callable[[str], None]] = None,
    ) -> None:
        """
        Initialize the orchestrator with all components.

        Args:
            settings: Application settings (loads from env if None).
            token_store: Token store (built from ``settings.token_dir`` if None).
            auth: Authenticator (built from settings if None).
            github: GitHub client (built from settings if None).
            open_browser: Replacement for :func:`prism.browser.open_url`.
        """
        self.settings = settings or get_settings()
        self.token_store = token_store or TokenStore(self.settings.token_dir)
        self.auth = auth or DeviceFlowAuthenticator(self.settings, self.token_store)
        self.github = github or GitHubClient(self.settings, self.token_store)
        self._open_browser = open_browser or open_url

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="prism-auth")
        self._lock = threading.Lock()
        self._auth_future: Optional[Future] = None
        self._closed = False

    def get_stored_credential(self) -> Optional[str]:
        """Return the stored token, or None. Never raises."""
        return self.token_store.load()

    @property
    def is_authenticated(self) -> bool:
        """Return True when a non-empty token is stored."""
        return bool(self.get_stored_credential())

    def start_auth_flow(self, on_user_code: Optional[PromptCallback] = None) -> str:
        """
        Run the device flow on the calling thread.

        Args:
            on_user_code: Called with the user code as soon as it is issued.

        Returns:
            str: The new token.

        Raises:
            ConflictError: If a flow is already running.
            RuntimeError: After :meth:`shutdown`.
        """
        with self._lock:
            self._ensure_can_start()
            self.auth.reset()
        return self.auth.start_flow(on_user_code)

    def begin_auth_flow(self) -> DeviceCodePrompt:
        """
        Start the device flow on the background worker.

        Blocks only until GitHub issues the user code, or the flow fails
        before that. Polling continues on the worker.

        Returns:
            DeviceCodePrompt: User code and verification URL.

        Raises:
            ConflictError: If a flow is already running.
            RuntimeError: After :meth:`shutdown`.
            NetworkError, ProtocolError, OAuthError: If requesting the device
                code fails.
            FlowCancelled: If the flow was cancelled before issuing a code.
        """
        prompts: "queue.Queue[Optional[DeviceCodePrompt]]" = queue.Queue()

        with self._lock:
            self._ensure_can_start()

            # Cancels from here on target the flow being submitted
            self.auth.reset()
            future = self._executor.submit(self.auth.start_flow, prompts.put)
            future.add_done_callback(lambda _f: prompts.put(None))
            self._auth_future = future

        prompt = prompts.get()
        if prompt is None:
            # Finished before a code was issued: surface the error.
            future.result()
            raise RuntimeError("Device flow ended without issuing a user code")

        logger.debug("Background GitHub sign-in started")
        return prompt

    def wait_for_auth(self, timeout: Optional[float] = None) -> str:
        """
        Block until the background flow finishes.

        Args:
            timeout: Seconds to wait (None waits for the flow to end).

        Returns:
            str: The new token.

        Raises:
            concurrent.futures.TimeoutError: If the flow is still running.
            RuntimeError: If no background flow was started.
            PrismError: Whatever ended the flow.
        """
        future = self._auth_future
        if future is None:
            raise RuntimeError("No GitHub sign-in has been started")
        return future.result(timeout=timeout)

    def auth_status(self) -> AuthStatus:
        """Snapshot of the current authentication state.

        Returns:
            AuthStatus: State, pending prompt and last error.
        """
        error = self.auth.last_error
        return AuthStatus(
            state=self.auth.state.value,
            authenticated=self.is_authenticated,
            prompt=self.auth.prompt,
            error=str(error) if error is not None else None,
        )

    @property
    def auth_in_progress(self) -> bool:
        """Return True while a device flow is polling or awaiting the user."""
        return self.auth.is_active and self.auth.state not in (
            FlowState.AUTHENTICATED,
            FlowState.FAILED,
            FlowState.TIMED_OUT,
            FlowState.CANCELLED,
        )

    def cancel_auth_flow(self) -> None:
        """Cancel the running flow, if any."""
        self.auth.cancel()

    def fetch_pull_requests(self) -> PullRequestData:
        """
        Fetch and classify pull requests.

        Returns:
            PullRequestData: Classified snapshot.
        """
        return self.github.fetch_pull_requests()

    def open_external_url(self, url: str) -> None:
        """Open ``url`` in the default browser.

        Raises:
            BrowserLaunchError: If the URL cannot be opened.
        """
        self._open_browser(url)

    def open_github(self) -> None:
        """Open the GitHub pull request dashboard."""
        self.open_external_url(GITHUB_PULLS_URL)

    def shutdown(self) -> None:
        """Cancel any running or queued flow and stop the worker thread.

        Later calls to :meth:`begin_auth_flow` and :meth:`start_auth_flow`
        raise ``RuntimeError``.
        """
        with self._lock:
            self._closed = True
            self.auth.cancel()
        self._executor.shutdown(wait=True)
        logger.debug("Orchestrator shut down")

    def _ensure_can_start(self) -> None:
        """Reject a new flow after shutdown or while another one is pending.

        Must be called with ``self._lock`` held.
        """
        if self._closed:
            raise RuntimeError("Orchestrator has been shut down")
        if self.auth.is_active or (
            self._auth_future is not None and not self._auth_future.done()
        ):
            raise ConflictError("A GitHub sign-in is already in progress")
