"""Application configuration and settings.

Objective:
    Provide a single source of truth for runtime configuration used across the
    application (GitHub OAuth app, credential location, HTTP behaviour, query
    sizes and UI refresh cadence).

Responsibilities:
    - Define the canonical set of pull request buckets (:class:`PRCategory`).
    - Load environment-driven settings via :class:`Settings` (Pydantic
      BaseSettings).

High-level call tree:
    - :func:`get_settings` -> returns :class:`Settings`

Operational notes:
    - ``Settings`` loads from ``.env`` by default via ``pydantic-settings``.
      Environment variables use the ``PRISM_`` prefix
      (e.g. ``PRISM_TOKEN_DIR``).
    - Every component accepts a ``Settings`` object explicitly to enable
      testing; the orchestrator falls back to :func:`get_settings` when not
      provided.
    - GitHub endpoint URLs are not settings. They live as
      constants on the classes that call them.
"""

from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Status label attached to approved pull requests
APPROVED_STATUS = "approved"

# File name of the persisted credential inside ``Settings.token_dir``
TOKEN_FILE_NAME = "token"


class PRCategory(str, Enum):
    """Canonical set of pull request buckets.

    These values are referenced by:
    - the classifier
    - the JSON payloads served to the web UI
    - the CLI printer

    The Enum values are the field names of
    :class:`prism.models.PullRequestData`.
    """

    NEEDS_REVIEW = "needs_review"
    APPROVED = "approved"
    WAITING_FOR_REVIEWERS = "waiting_for_reviewers"
    DRAFTS = "drafts"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The settings model is flat and editable via `.env`.
    Every field maps to a ``PRISM_``-prefixed environment variable.

    Attributes:
        github_client_id: OAuth app client ID used for the device flow.
        oauth_scopes: Space-separated scopes requested during the device flow.
        token_dir: Directory holding the persisted credential.
        http_timeout: Per-request timeout in seconds.
        slow_down_backoff: Grow the poll interval when GitHub answers
            ``slow_down``.
        own_pull_request_limit: Page size for the viewer's own PRs.
        review_search_limit: Page size for the review-requested search.
        refresh_interval_seconds: Auto-refresh cadence for the web UI.
        log_level: Logging level.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PRISM_",
        case_sensitive=False,
    )

    # GitHub OAuth app
    github_client_id: str = Field(
        default="Ov23liUkXjGnMzhLzpLr", description="GitHub OAuth app client ID"
    )
    oauth_scopes: str = Field(
        default="repo read:user",
        description="Space-separated OAuth scopes requested by the device flow",
    )

    # Credential persistence
    token_dir: Path = Field(
        default_factory=lambda: Path.home() / ".prism",
        description="Directory holding the persisted GitHub token",
    )

    # HTTP behaviour
    http_timeout: float = Field(
        default=30.0, gt=0, description="Timeout in seconds for each HTTP request"
    )
    slow_down_backoff: bool = Field(
        default=True,
        description=(
            "Increase the polling interval when GitHub returns 'slow_down'. "
            "Disable to poll at the originally issued interval."
        ),
    )

    # Query sizes
    own_pull_request_limit: int = Field(
        default=50, ge=1, le=100, description="Open PRs authored by the viewer"
    )
    review_search_limit: int = Field(
        default=50, ge=1, le=100, description="Open PRs requesting the viewer's review"
    )

    # Web UI
    refresh_interval_seconds: int = Field(
        default=300, ge=10, description="Auto-refresh cadence of the PR page"
    )
    log_level: str = Field(default="INFO", description="Logging level")


def get_settings() -> Settings:
    """
    Load and return application settings.

    This helper is a convenience for production code. For tests, you typically
    construct a :class:`Settings` instance directly (e.g. with
    ``token_dir=tmp_path``).

    Returns:
        Settings: Application settings instance.

    Raises:
        ValidationError: If an environment variable holds an invalid value.
    """
    return Settings()
