"""Default-browser launcher.

Used by the device flow to show the verification page, and by host shells to
open pull requests. Only ``http`` and ``https`` URLs are handed to the
browser.
"""

import logging
import webbrowser
from urllib.parse import urlparse

from .errors import BrowserLaunchError

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = frozenset({"http", "https"})


def open_url(url: str) -> None:
    """Open ``url`` in the user's default browser.

    Args:
        url: Absolute http(s) URL.

    Raises:
        BrowserLaunchError: If the URL is not http(s) or no browser could be
            launched.
    """
    scheme = urlparse(url).scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise BrowserLaunchError(f"Refusing to open non-web URL: {url!r}")

    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as exc:
        raise BrowserLaunchError(f"Failed to open {url}: {exc}") from exc

    if not opened:
        raise BrowserLaunchError(f"No browser available to open {url}")

    logger.debug("Opened %s in default browser", url)
