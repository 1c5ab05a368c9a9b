"""Exception hierarchy.

Every failure surfaced by the core derives from :class:`PrismError` so host
shells can catch one base class and render ``str(exc)`` as-is.

Mapping:
    - :class:`NetworkError`: transport failure (DNS, connection, timeout) or
      an unexpected HTTP status.
    - :class:`ProtocolError`: a response could not be decoded into the
      expected shape.
    - :class:`OAuthError`: GitHub explicitly denied the flow or returned an
      unexpected OAuth error code.
    - :class:`FlowTimedOut`: the device code expired before the user
      authorized it.
    - :class:`FlowCancelled`: the host cancelled the flow.
    - :class:`AuthError`: no usable credential.
    - :class:`StorageError`: the credential could not be persisted.
    - :class:`ConflictError`: a second device flow was started while one is
      still running.
    - :class:`BrowserLaunchError`: a URL could not be opened.
"""


class PrismError(Exception):
    """Base class for all Prism errors."""

    kind = "error"


class NetworkError(PrismError):
    """Raised when GitHub cannot be reached or answers with an unexpected status."""

    kind = "network_error"


class ProtocolError(PrismError):
    """Raised when a GitHub response does not have the expected shape."""

    kind = "protocol_error"


class OAuthError(PrismError):
    """Raised when the device flow is rejected by GitHub.

    Args:
        message: Error code or description returned by GitHub.
    """

    kind = "oauth_error"

    def __init__(self, message: str) -> None:
        super().__init__(f"OAuth error: {message}")
        self.message = message


class FlowTimedOut(OAuthError):
    """Raised when the poll budget is exhausted without a token."""

    kind = "timed_out"

    def __init__(self) -> None:
        super().__init__("timed out")


class FlowCancelled(PrismError):
    """Raised when the device flow is cancelled before completion."""

    kind = "cancelled"


class AuthError(PrismError):
    """Raised when an operation needs a GitHub token and none is usable."""

    kind = "not_authenticated"


class StorageError(PrismError):
    """Raised when the token cannot be written to disk."""

    kind = "storage_error"


class ConflictError(PrismError):
    """Raised when a device flow is already in progress."""

    kind = "conflict"


class BrowserLaunchError(PrismError):
    """Raised when a URL cannot be handed to the default browser."""

    kind = "browser_error"
