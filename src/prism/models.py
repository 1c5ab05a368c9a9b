"""Pydantic data models used across the application.

Objective:
    Centralize all strongly-typed data structures representing:
    - OAuth device-flow payloads returned by GitHub
    - The in-memory device session and the prompt shown to the user
    - Raw pull request nodes returned by the GitHub GraphQL API
    - The canonical pull request record and the classified buckets

Design notes:
    - Raw GraphQL models use Pydantic aliases to match GitHub field names
      (e.g. ``nameWithOwner`` -> :attr:`RawRepository.name_with_owner`).
    - ``model_config = ConfigDict(populate_by_name=True)`` is used to allow
      constructing models with either alias names or pythonic field names.
    - Raw models are validated one node at a time so that a single malformed
      node cannot fail a whole batch.

High-level structure:
    - OAuth primitives:
        - :class:`DeviceCodeResponse`
        - :class:`AccessTokenResponse`
        - :class:`DeviceSession`
        - :class:`DeviceCodePrompt`
        - :class:`AuthStatus`
    - GraphQL primitives:
        - :class:`RawAuthor`
        - :class:`RawRepository`
        - :class:`RawReview`
        - :class:`RawReviewConnection`
        - :class:`RawCountConnection`
        - :class:`RawPullRequestNode`
    - Canonical primitives:
        - :class:`PullRequest`
        - :class:`PullRequestData`

Call tree usage:
    - :class:`prism.auth.DeviceFlowAuthenticator`:
        - validates OAuth responses into :class:`DeviceCodeResponse` and
          :class:`AccessTokenResponse`
    - :mod:`prism.classifier`:
        - validates GraphQL nodes into :class:`RawPullRequestNode`
        - returns :class:`PullRequestData`
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import PRCategory

# Review state that moves an authored PR into the approved bucket
APPROVED_REVIEW_STATE = "APPROVED"


class DeviceCodeResponse(BaseModel):
    """Response of the device code endpoint.

    ``interval`` defaults to 5 seconds when omitted (RFC 8628 section 3.2)
    and must be positive since it bounds the number of polls.
    """

    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int = Field(ge=0)
    interval: int = Field(default=5, gt=0)


class AccessTokenResponse(BaseModel):
    """Response of the access token endpoint.

    GitHub answers with HTTP 200 in both cases: either ``access_token`` is
    set, or ``error`` carries the reason (``authorization_pending``,
    ``slow_down``, ``expired_token``, ``access_denied``...).
    """

    access_token: Optional[str] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None
    interval: Optional[int] = None


class DeviceCodePrompt(BaseModel):
    """What the user needs to complete the flow in a browser.

    This is the only part of a device session that is handed to host shells.
    """

    user_code: str
    verification_uri: str
    expires_in: int


class DeviceSession(BaseModel):
    """
    State of one device-flow attempt.

    Lives in memory for the duration of a single authentication attempt.
    ``device_code`` is only ever sent to the token endpoint and is hidden
    from ``repr`` so it does not end up in logs.

    Attributes:
        device_code: Secret code used when polling.
        user_code: Code the user types on GitHub.
        verification_uri: Where the user types it.
        interval: Current wait between polls, in seconds.
        expires_in: Lifetime of the device code, in seconds.
        max_attempts: Poll budget, ``floor(expires_in / interval)`` as issued.
    """

    device_code: str = Field(repr=False)
    user_code: str
    verification_uri: str
    interval: int
    expires_in: int
    max_attempts: int

    @classmethod
    def from_response(cls, response: DeviceCodeResponse) -> "DeviceSession":
        """Start a session from a device code response.

        Args:
            response: Validated device code response.

        Returns:
            DeviceSession: New session with its poll budget fixed.
        """
        return cls(
            device_code=response.device_code,
            user_code=response.user_code,
            verification_uri=response.verification_uri,
            interval=response.interval,
            expires_in=response.expires_in,
            max_attempts=response.expires_in // response.interval,
        )

    @property
    def prompt(self) -> DeviceCodePrompt:
        """Return the user-facing part of the session."""
        return DeviceCodePrompt(
            user_code=self.user_code,
            verification_uri=self.verification_uri,
            expires_in=self.expires_in,
        )


class AuthStatus(BaseModel):
    """Snapshot of the authentication state served to host shells."""

    state: str
    authenticated: bool = False
    prompt: Optional[DeviceCodePrompt] = None
    error: Optional[str] = None


class RawAuthor(BaseModel):
    """Pull request author (``author { login avatarUrl }``)."""

    login: str
    avatar_url: str = Field(alias="avatarUrl")

    model_config = ConfigDict(populate_by_name=True)


class RawRepository(BaseModel):
    """Owning repository (``repository { nameWithOwner }``)."""

    name_with_owner: str = Field(alias="nameWithOwner")

    model_config = ConfigDict(populate_by_name=True)


class RawReview(BaseModel):
    """Single review node. Only the state is queried."""

    state: Optional[str] = None


class RawReviewConnection(BaseModel):
    """``reviews(...) { nodes { state } }`` connection."""

    nodes: list[RawReview] = Field(default_factory=list)

    @field_validator("nodes", mode="before")
    @classmethod
    def _drop_null_nodes(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [node for node in value if node is not None]
        return value


class RawCountConnection(BaseModel):
    """Connection where only ``totalCount`` is queried."""

    total_count: int = Field(default=0, alias="totalCount")

    model_config = ConfigDict(populate_by_name=True)


class RawPullRequestNode(BaseModel):
    """
    Pull request node as returned by the GitHub GraphQL API.

    Required fields mirror the canonical :class:`PullRequest`. The review
    sub-fields are only present on the viewer's own pull requests and default
    to empty connections elsewhere.

    Attributes:
        number: Pull request number within its repository.
        title: Pull request title.
        url: Canonical HTML URL.
        is_draft: Whether the PR is a draft.
        repository: Owning repository.
        author: Author login and avatar.
        review_requests: Outstanding review requests.
        reviews: Approving / change-requesting reviews.
    """

    number: int
    title: str
    url: str
    is_draft: bool = Field(default=False, alias="isDraft")
    repository: RawRepository
    author: RawAuthor
    review_requests: RawCountConnection = Field(
        default_factory=RawCountConnection, alias="reviewRequests"
    )
    reviews: RawReviewConnection = Field(default_factory=RawReviewConnection)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("is_draft", mode="before")
    @classmethod
    def _null_draft_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("review_requests", mode="before")
    @classmethod
    def _null_requests_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("reviews", mode="before")
    @classmethod
    def _null_reviews_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def has_approval(self) -> bool:
        """Return True when at least one review is APPROVED."""
        return any(review.state == APPROVED_REVIEW_STATE for review in self.reviews.nodes)

    @property
    def has_review_requests(self) -> bool:
        """Return True when reviewers are still requested."""
        return self.review_requests.total_count > 0

    def to_pull_request(self) -> "PullRequest":
        """Convert to the canonical record (without a status label).

        Returns:
            PullRequest: Canonical pull request.
        """
        return PullRequest(
            number=self.number,
            title=self.title,
            repo=self.repository.name_with_owner,
            author=self.author.login,
            avatar=self.author.avatar_url,
            url=self.url,
        )


class PullRequest(BaseModel):
    """
    Canonical pull request record.

    This is the primary output type rendered by the CLI and web UI. A fresh
    set of records is produced on every fetch.

    Attributes:
        number: Pull request number.
        title: Title.
        repo: Qualified repository name, e.g. ``owner/repo``.
        author: Author login.
        avatar: Author avatar URL.
        url: Canonical URL.
        status: Optional status label (``"approved"``).
    """

    number: int
    title: str
    repo: str
    author: str
    avatar: str
    url: str
    status: Optional[str] = None

    @property
    def key(self) -> tuple[str, int]:
        """Identity of the pull request: ``(repo, number)``."""
        return (self.repo, self.number)


class PullRequestData(BaseModel):
    """
    Classified snapshot of the user's open pull requests.

    Attributes:
        needs_review: PRs where the user is a requested reviewer.
        approved: User's PRs with at least one approval.
        waiting_for_reviewers: User's non-draft PRs without approval.
        drafts: User's draft PRs.
    """

    needs_review: list[PullRequest] = Field(default_factory=list)
    approved: list[PullRequest] = Field(default_factory=list)
    waiting_for_reviewers: list[PullRequest] = Field(default_factory=list)
    drafts: list[PullRequest] = Field(default_factory=list)

    def bucket(self, category: PRCategory) -> list[PullRequest]:
        """Return the list backing ``category``.

        Args:
            category: Bucket to return.

        Returns:
            list[PullRequest]: The (mutable) bucket list.
        """
        return getattr(self, PRCategory(category).value)

    @property
    def total(self) -> int:
        """Number of pull requests across all buckets."""
        return sum(len(self.bucket(category)) for category in PRCategory)
