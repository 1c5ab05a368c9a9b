"""GitHub device-flow authentication.

Objective:
    Obtain a GitHub access token for an unattended desktop client, without a
    redirect server, using the OAuth 2.0 device authorization grant
    (RFC 8628), and persist it through :class:`prism.token_store.TokenStore`.

Responsibilities:
    - Request a device code / user code pair from GitHub.
    - Hand the user code and verification URL to the host shell and open the
      verification page in the default browser.
    - Poll the token endpoint at the server-issued cadence until GitHub
      answers with a token, an error, or the code expires.
    - Support cancellation from another thread while polling.
    - Reject a second flow while one is running.

High-level call tree:
    - :class:`DeviceFlowAuthenticator`
        - :meth:`DeviceFlowAuthenticator.start_flow`
            - :meth:`DeviceFlowAuthenticator.request_device_code`
                - :meth:`DeviceFlowAuthenticator._post_form`
            - :meth:`DeviceFlowAuthenticator._hand_off`
                - :func:`prism.browser.open_url`
            - :meth:`DeviceFlowAuthenticator.poll_for_token`
                - :meth:`DeviceFlowAuthenticator._wait`
                - :meth:`DeviceFlowAuthenticator._request_token`
                - :meth:`TokenStore.save`
        - :meth:`DeviceFlowAuthenticator.cancel`

State machine:
    ``idle -> code_requested -> awaiting_user_action -> polling`` then one of
    ``authenticated``, ``failed``, ``timed_out`` or ``cancelled``.

Operational notes:
    - Polling cadence and the poll budget come entirely from the device code
      response (``interval`` and ``expires_in``). At most
      ``floor(expires_in / interval)`` token requests are issued.
    - ``slow_down`` grows the interval when ``Settings.slow_down_backoff`` is
      enabled (server-supplied interval, otherwise +5 seconds). The poll
      budget is not recomputed.
    - The wait between polls is ``threading.Event.wait`` so that
      :meth:`DeviceFlowAuthenticator.cancel` interrupts it immediately. Tests
      inject a ``sleep`` callable instead.
"""

import logging
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator, Optional

import requests
from pydantic import ValidationError

from .browser import open_url
from .config import Settings
from .errors import (
    ConflictError,
    FlowCancelled,
    FlowTimedOut,
    NetworkError,
    OAuthError,
    PrismError,
    ProtocolError,
)
from .models import AccessTokenResponse, DeviceCodePrompt, DeviceCodeResponse, DeviceSession
from .token_store import TokenStore

logger = logging.getLogger(__name__)

PromptCallback = Callable[[DeviceCodePrompt], None]


class FlowState(str, Enum):
    """States of a device-flow attempt."""

    IDLE = "idle"
    CODE_REQUESTED = "code_requested"
    AWAITING_USER_ACTION = "awaiting_user_action"
    POLLING = "polling"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class DeviceFlowAuthenticator:
    """
    Runs the GitHub OAuth device flow.

    One instance handles one flow at a time. The current state, the pending
    prompt and the last error are exposed as attributes so a host shell can
    render progress from another thread.

    Attributes:
        settings: Application settings (client id, scopes, HTTP timeout).
        token_store: Where the token is persisted on success.
        state: Current :class:`FlowState`.
        prompt: User code and URL of the pending flow, if any.
        last_error: Error that ended the last flow, if any.
    """

    DEVICE_CODE_URL = "https://github.com/login/device/code"
    ACCESS_TOKEN_URL = "https://github.com/login/oauth/access_token"
    DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"

    # RFC 8628 section 3.5
    SLOW_DOWN_INCREMENT = 5

    def __init__(
        self,
        settings: Settings,
        token_store: TokenStore,
        http: Optional[requests.Session] = None,
        sleep: Optional[Callable[[float], None]] = None,
        open_browser: Optional[Callable[[str], None]] = None,
    ) -> None:
        """
        Initialize the authenticator.

        Args:
            settings: Application settings.
            token_store: Token persistence.
            http: HTTP session (a new ``requests.Session`` if None).
            sleep: Replacement for the cancellable wait between polls.
            open_browser: Replacement for :func:`prism.browser.open_url`.
        """
        self.settings = settings
        self.token_store = token_store
        self._http = http or requests.Session()
        self._sleep = sleep
        self._open_browser = open_browser or open_url
        self._flow_lock = threading.Lock()
        self._cancel_event = threading.Event()

        self.state = FlowState.IDLE
        self.prompt: Optional[DeviceCodePrompt] = None
        self.last_error: Optional[PrismError] = None

    @property
    def is_active(self) -> bool:
        """Return True while a flow started by :meth:`start_flow` is running."""
        return self._flow_lock.locked()

    def start_flow(self, on_user_code: Optional[PromptCallback] = None) -> str:
        """
        Run the whole device flow and return the new token.

        Blocks the calling thread until the flow terminates. Run it on a
        worker thread to keep a UI responsive.

        Args:
            on_user_code: Called once with the user code and verification URL
                as soon as GitHub issues them.

        Returns:
            str: The access token (already persisted).

        Raises:
            ConflictError: If another flow is already running.
            NetworkError: If GitHub cannot be reached.
            ProtocolError: If GitHub answers with an unexpected payload.
            OAuthError: If GitHub rejects the flow (FlowTimedOut on expiry).
            FlowCancelled: If :meth:`cancel` was called.
            StorageError: If the token cannot be persisted.
        """
        if not self._flow_lock.acquire(blocking=False):
            raise ConflictError("A GitHub sign-in is already in progress")

        try:
            self.prompt = None
            self.last_error = None

            with self._track_failures():
                self._raise_if_cancelled()

            session = self.request_device_code()
            self._hand_off(session, on_user_code)
            return self.poll_for_token(session)
        finally:
            # A cancel aimed at this flow must not leak into the next one
            self._cancel_event.clear()
            self._flow_lock.release()

    def reset(self) -> None:
        """Forget a cancel request left over from before the next flow.

        Raises:
            ConflictError: If a flow is running.
        """
        if self.is_active:
            raise ConflictError("A GitHub sign-in is already in progress")
        self._cancel_event.clear()

    def cancel(self) -> None:
        """Stop the running or next flow. The poller exits without storing a token.

        A cancel issued before :meth:`start_flow` begins is honoured by that
        flow; call :meth:`reset` to discard it.
        """
        if self.is_active:
            logger.info("Cancelling GitHub sign-in")
        self._cancel_event.set()

    def request_device_code(self) -> DeviceSession:
        """
        Ask GitHub for a device code and user code.

        Returns:
            DeviceSession: New session holding the codes and poll budget.

        Raises:
            NetworkError: On transport failure.
            ProtocolError: If the response is not a device code payload.
            OAuthError: If GitHub returns an OAuth error (e.g. bad client id).
        """
        with self._track_failures():
            self.state = FlowState.CODE_REQUESTED
            payload = self._post_form(
                self.DEVICE_CODE_URL,
                {
                    "client_id": self.settings.github_client_id,
                    "scope": self.settings.oauth_scopes,
                },
            )

            if payload.get("error"):
                raise OAuthError(str(payload.get("error_description") or payload["error"]))

            try:
                response = DeviceCodeResponse.model_validate(payload)
            except ValidationError as exc:
                raise ProtocolError(f"Unexpected device code response: {exc}") from exc

            # Cancelled while the code was being issued
            self._raise_if_cancelled()

            session = DeviceSession.from_response(response)
            logger.debug(
                "Device code issued (interval=%ss, expires_in=%ss, max_attempts=%s)",
                session.interval,
                session.expires_in,
                session.max_attempts,
            )
            return session

    def poll_for_token(self, session: DeviceSession) -> str:
        """
        Poll the token endpoint until the user authorizes the device.

        Each iteration waits ``session.interval`` seconds, then polls once.

        Args:
            session: Session returned by :meth:`request_device_code`.

        Returns:
            str: The access token (already persisted).

        Raises:
            NetworkError: On transport failure.
            ProtocolError: If a response carries neither a token nor an error.
            OAuthError: On any error other than ``authorization_pending`` or
                ``slow_down``.
            FlowTimedOut: When the poll budget is exhausted.
            FlowCancelled: If :meth:`cancel` was called.
            StorageError: If the token cannot be persisted.
        """
        with self._track_failures():
            self.state = FlowState.POLLING

            for attempt in range(1, session.max_attempts + 1):
                self._wait(session.interval)

                result = self._request_token(session)
                # Cancelled while the token request was in flight
                self._raise_if_cancelled()

                if result.access_token:
                    self.token_store.save(result.access_token)
                    self.state = FlowState.AUTHENTICATED
                    self.prompt = None
                    logger.info("GitHub sign-in completed after %s poll(s)", attempt)
                    return result.access_token

                if result.error == "authorization_pending":
                    logger.debug("Authorization pending (poll %s/%s)", attempt, session.max_attempts)
                    continue

                if result.error == "slow_down":
                    session.interval = self._next_interval(session.interval, result)
                    logger.debug("GitHub asked to slow down; interval=%ss", session.interval)
                    continue

                if result.error:
                    logger.error(
                        "GitHub sign-in failed: %s - %s",
                        result.error,
                        result.error_description or "",
                    )
                    raise OAuthError(result.error)

                raise ProtocolError("Access token response has neither a token nor an error")

            raise FlowTimedOut()

    def _hand_off(self, session: DeviceSession, on_user_code: Optional[PromptCallback]) -> None:
        """Surface the user code and open the verification page.

        A browser that fails to open is not fatal: the user can still
        navigate to the URL manually.

        Both steps run on the polling thread before the first poll, so a
        slow ``on_user_code`` callback or browser launch delays polling by
        the same amount. The poll budget is unaffected.
        """
        self.state = FlowState.AWAITING_USER_ACTION
        prompt = session.prompt
        self.prompt = prompt
        logger.info(
            "To sign in to GitHub, open %s and enter code %s",
            prompt.verification_uri,
            prompt.user_code,
        )

        if on_user_code is not None:
            on_user_code(prompt)

        try:
            self._open_browser(prompt.verification_uri)
        except Exception as exc:
            logger.warning(f"Could not open browser for GitHub sign-in: {exc}")

    def _wait(self, seconds: float) -> None:
        """Wait between polls.

        Raises:
            FlowCancelled: If the flow was cancelled before or during the wait.
        """
        if self._sleep is None:
            cancelled = self._cancel_event.wait(seconds)
        else:
            self._sleep(seconds)
            cancelled = self._cancel_event.is_set()

        if cancelled:
            raise FlowCancelled("GitHub sign-in was cancelled")

    def _raise_if_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise FlowCancelled("GitHub sign-in was cancelled")

    def _request_token(self, session: DeviceSession) -> AccessTokenResponse:
        payload = self._post_form(
            self.ACCESS_TOKEN_URL,
            {
                "client_id": self.settings.github_client_id,
                "device_code": session.device_code,
                "grant_type": self.DEVICE_GRANT_TYPE,
            },
        )
        try:
            return AccessTokenResponse.model_validate(payload)
        except ValidationError as exc:
            raise ProtocolError(f"Unexpected access token response: {exc}") from exc

    def _next_interval(self, interval: int, result: AccessTokenResponse) -> int:
        """Compute the wait after a ``slow_down`` answer.

        Args:
            interval: Current interval in seconds.
            result: The ``slow_down`` response.

        Returns:
            int: New interval in seconds.
        """
        if not self.settings.slow_down_backoff:
            return interval
        if result.interval and result.interval > interval:
            return result.interval
        return interval + self.SLOW_DOWN_INCREMENT

    def _post_form(self, url: str, data: dict[str, str]) -> dict:
        """POST a form-encoded body and decode the JSON answer.

        Args:
            url: OAuth endpoint.
            data: Form fields.

        Returns:
            dict: Decoded JSON object.

        Raises:
            NetworkError: On transport failure.
            ProtocolError: If the body is not a JSON object.
        """
        try:
            response = self._http.post(
                url,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self.settings.http_timeout,
            )
        except requests.RequestException as exc:
            raise NetworkError(f"Request to {url} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProtocolError(
                f"Invalid JSON from {url} (HTTP {response.status_code})"
            ) from exc

        if not isinstance(payload, dict):
            raise ProtocolError(f"Expected a JSON object from {url}")
        return payload

    @contextmanager
    def _track_failures(self) -> Iterator[None]:
        """Move to the matching terminal state when a step raises."""
        try:
            yield
        except FlowTimedOut as exc:
            self._finish(FlowState.TIMED_OUT, exc)
            raise
        except FlowCancelled as exc:
            self._finish(FlowState.CANCELLED, exc)
            raise
        except PrismError as exc:
            self._finish(FlowState.FAILED, exc)
            raise

    def _finish(self, state: FlowState, error: PrismError) -> None:
        self.state = state
        self.prompt = None
        self.last_error = error
        logger.debug("Device flow ended in state %s: %s", state.value, error)
