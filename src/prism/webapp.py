"""FastAPI web frontend for Prism.

Objective:
    Provide a lightweight web interface and JSON API on top of
    :class:`prism.orchestrator.PrismOrchestrator`. This module
    keeps protocol and classification logic inside the core and only handles
    HTTP request parsing and response rendering.

High-level call tree:
    - :func:`create_app`:
        - defines routes:
            - ``GET /health`` -> :func:`health`
            - ``GET /`` -> :func:`home`
            - ``POST /auth/start`` -> :func:`auth_start_html`
            - ``POST /auth/cancel`` -> :func:`auth_cancel_html`
            - ``GET /api/credential`` -> :func:`credential_api`
            - ``POST /api/auth/start`` -> :func:`auth_start_api`
            - ``GET /api/auth/status`` -> :func:`auth_status_api`
            - ``POST /api/auth/cancel`` -> :func:`auth_cancel_api`
            - ``GET /api/pulls`` -> :func:`pulls_api`
            - ``POST /api/open-url`` -> :func:`open_url_api`
            - ``POST /api/open-github`` -> :func:`open_github_api`
        - wires templates via :class:`fastapi.templating.Jinja2Templates`
    - :func:`get_orchestrator`:
        - returns the process-wide
          :class:`prism.orchestrator.PrismOrchestrator`.

Data flow:
    - HTTP request -> orchestrator call -> render template / JSON.

Operational notes:
    - Route handlers are plain ``def`` functions, so FastAPI runs them in its
      worker threadpool. The device-flow poller runs on the orchestrator's
      own worker thread; neither blocks the event loop.
    - The stored token is never returned over HTTP.
    - On shutdown, the lifespan handler cancels any pending sign-in.
    - For tests, :func:`get_orchestrator` is overridden via
      ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from pathlib import Path
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates

from .config import PRCategory, get_settings
from .errors import (
    AuthError,
    BrowserLaunchError,
    ConflictError,
    NetworkError,
    OAuthError,
    PrismError,
    ProtocolError,
    StorageError,
)
from .orchestrator import PrismOrchestrator

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

# Seconds between page reloads while a sign-in is pending
AUTH_PENDING_REFRESH_SECONDS = 5

STATUS_CODES: dict[type, int] = {
    AuthError: 401,
    ConflictError: 409,
    OAuthError: 400,
    NetworkError: 502,
    ProtocolError: 502,
    StorageError: 500,
    BrowserLaunchError: 500,
}

SECTION_TITLES = {
    PRCategory.NEEDS_REVIEW: "Needs your review",
    PRCategory.APPROVED: "Approved",
    PRCategory.WAITING_FOR_REVIEWERS: "Waiting for reviewers",
    PRCategory.DRAFTS: "Drafts",
}


@lru_cache(maxsize=1)
def get_orchestrator() -> PrismOrchestrator:
    """Return the process-wide :class:`~prism.orchestrator.PrismOrchestrator`.

    A single instance is shared by all requests because it owns the
    background sign-in. Tests override this dependency with a stub.

    Returns:
        PrismOrchestrator: Shared orchestrator.
    """

    return PrismOrchestrator(settings=get_settings())


def status_code_for(exc: PrismError) -> int:
    """Map a Prism error onto an HTTP status code.

    Args:
        exc: Error raised by the core.

    Returns:
        int: HTTP status code (500 for unmapped errors).
    """

    for error_type, status_code in STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


def error_response(exc: PrismError) -> JSONResponse:
    """Render a Prism error as ``{"error": kind, "message": str}``."""

    return JSONResponse(
        {"error": exc.kind, "message": str(exc)},
        status_code=status_code_for(exc),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Cancel a pending sign-in when the server stops."""

    yield
    if get_orchestrator.cache_info().currsize:
        get_orchestrator().shutdown()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    The app provides both an HTML UI and a JSON API.

    Template directory:
        Resolved relative to this module so the app works regardless of the
        current working directory.

    Returns:
        FastAPI: FastAPI app.
    """

    app = FastAPI(title="Prism", lifespan=lifespan)

    templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

    def render(request: Request, name: str, context: dict[str, Any], status_code: int = 200) -> Any:
        return templates.TemplateResponse(
            request,
            name,
            {"request": request, **context},
            status_code=status_code,
        )

    def render_auth_pending(request: Request, prompt: Any) -> Any:
        return render(
            request,
            "auth_required.html",
            {
                "verification_uri": prompt.verification_uri,
                "user_code": prompt.user_code,
                "expires_minutes": prompt.expires_in // 60,
                "refresh_seconds": AUTH_PENDING_REFRESH_SECONDS,
            },
        )

    def render_connect(request: Request, error: str = "", status_code: int = 200) -> Any:
        return render(request, "connect.html", {"error": error}, status_code=status_code)

    @app.get("/health")
    def health() -> dict[str, str]:
        """Health check endpoint.

        This is intentionally simple and should not perform external calls.

        Returns:
            dict[str, str]: Health payload.
        """

        return {"status": "ok"}

    @app.get("/", response_class=HTMLResponse)
    def home(
        request: Request,
        orchestrator: PrismOrchestrator = Depends(get_orchestrator),
    ) -> Any:
        """Render the homepage.

        - No token and no pending sign-in: the connect page.
        - Sign-in pending: the device-code page.
        - Token stored: the pull request buckets.

        Args:
            request: FastAPI request.
            orchestrator: Orchestrator dependency.

        Returns:
            Any: Template response.
        """

        status = orchestrator.auth_status()
        if status.prompt is not None and orchestrator.auth_in_progress:
            return render_auth_pending(request, status.prompt)

        if not orchestrator.is_authenticated:
            return render_connect(request, error=status.error or "")

        try:
            data = orchestrator.fetch_pull_requests()
        except AuthError as e:
            return render_connect(request, error=str(e))
        except PrismError as e:
            logger.warning(f"Failed to fetch pull requests: {e}")
            return render(
                request,
                "index.html",
                {
                    "sections": [],
                    "error": str(e),
                    "refresh_seconds": orchestrator.settings.refresh_interval_seconds,
                },
                status_code=status_code_for(e),
            )

        sections = [
            {"key": category.value, "title": SECTION_TITLES[category], "pulls": data.bucket(category)}
            for category in PRCategory
        ]
        return render(
            request,
            "index.html",
            {
                "sections": sections,
                "error": "",
                "refresh_seconds": orchestrator.settings.refresh_interval_seconds,
            },
        )

    @app.post("/auth/start", response_class=HTMLResponse)
    def auth_start_html(
        request: Request,
        orchestrator: PrismOrchestrator = Depends(get_orchestrator),
    ) -> Any:
        """Start a background sign-in and show the device code.

        Args:
            request: FastAPI request.
            orchestrator: Orchestrator dependency.

        Returns:
            Any: Template response.
        """

        try:
            prompt = orchestrator.begin_auth_flow()
        except ConflictError:
            prompt = orchestrator.auth_status().prompt
            if prompt is None:
                return render_connect(request, error="A GitHub sign-in is already in progress", status_code=409)
        except PrismError as e:
            return render_connect(request, error=str(e), status_code=status_code_for(e))

        return render_auth_pending(request, prompt)

    @app.post("/auth/cancel", response_class=HTMLResponse)
    def auth_cancel_html(
        request: Request,
        orchestrator: PrismOrchestrator = Depends(get_orchestrator),
    ) -> Any:
        """Cancel the pending sign-in and return to the connect page."""

        orchestrator.cancel_auth_flow()
        return render_connect(request)

    @app.get("/api/credential")
    def credential_api(
        orchestrator: PrismOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, bool]:
        """Report whether a token is stored (without returning it)."""

        return {"authenticated": orchestrator.is_authenticated}

    @app.post("/api/auth/start")
    def auth_start_api(
        orchestrator: PrismOrchestrator = Depends(get_orchestrator),
    ) -> Any:
        """Start a background sign-in via JSON API.

        Returns:
            Any: ``{"user_code", "verification_uri", "expires_in"}``, or an
            error payload.
        """

        try:
            prompt = orchestrator.begin_auth_flow()
        except PrismError as e:
            return error_response(e)
        return prompt.model_dump()

    @app.get("/api/auth/status")
    def auth_status_api(
        orchestrator: PrismOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, Any]:
        """Report the sign-in state."""

        return orchestrator.auth_status().model_dump()

    @app.post("/api/auth/cancel")
    def auth_cancel_api(
        orchestrator: PrismOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, Any]:
        """Cancel the pending sign-in."""

        orchestrator.cancel_auth_flow()
        return orchestrator.auth_status().model_dump()

    @app.get("/api/pulls")
    def pulls_api(
        orchestrator: PrismOrchestrator = Depends(get_orchestrator),
    ) -> Any:
        """Fetch and classify pull requests via JSON API.

        Returns:
            Any: The four buckets, or an error payload (401 when not signed
            in).
        """

        try:
            data = orchestrator.fetch_pull_requests()
        except PrismError as e:
            return error_response(e)
        return data.model_dump(exclude_none=True)

    @app.post("/api/open-url")
    def open_url_api(
        payload: dict[str, Any],
        orchestrator: PrismOrchestrator = Depends(get_orchestrator),
    ) -> Any:
        """Open a URL in the default browser of the machine running Prism.

        Expected request body:
            ``{"url": "https://github.com/owner/repo/pull/1"}``

        Args:
            payload: JSON payload with key ``url``.
            orchestrator: Orchestrator dependency.

        Returns:
            Any: ``{"opened": url}`` or an error payload.
        """

        url = str(payload.get("url") or "")
        try:
            orchestrator.open_external_url(url)
        except PrismError as e:
            return error_response(e)
        return {"opened": url}

    @app.post("/api/open-github")
    def open_github_api(
        orchestrator: PrismOrchestrator = Depends(get_orchestrator),
    ) -> Any:
        """Open the GitHub pull request dashboard."""

        try:
            orchestrator.open_github()
        except PrismError as e:
            return error_response(e)
        return {"opened": "github"}

    return app


app = create_app()
