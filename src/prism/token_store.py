"""File-backed GitHub token store.

Objective:
    Provide a small persistence layer for the single GitHub access token
    obtained through the device flow.

Key points:
    - The store is constructed with an explicit directory so tests (and
      alternative installs) never touch the real home directory.
    - The token is written verbatim: no encoding, no encryption.
    - Exactly one credential exists at a time; saving overwrites.

Operational notes:
    - The token grants ``repo`` access. Treat the directory as sensitive.
    - There is no locking. A single process is assumed to be the only
      writer.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .config import TOKEN_FILE_NAME
from .errors import StorageError

logger = logging.getLogger(__name__)


class TokenStore:
    """Store and retrieve the GitHub token from a local file.

    Args:
        directory: Directory holding the token file.
    """

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    @property
    def path(self) -> Path:
        """Full path of the token file."""
        return self._directory / TOKEN_FILE_NAME

    def load(self) -> Optional[str]:
        """Read the stored token.

        Any read failure is treated as "not authenticated".

        Returns:
            Optional[str]: The token, or None when missing, empty or
            unreadable.
        """

        path = self.path
        try:
            token = path.read_bytes().decode("utf-8")
        except FileNotFoundError:
            logger.debug("No token file at %s", path)
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to read token file %s: %s", path, exc)
            return None

        if not token:
            logger.debug("Token file at %s is empty", path)
            return None
        return token

    def save(self, token: str) -> None:
        """Persist the token, replacing any previous one.

        Args:
            token: Access token to store.

        Raises:
            StorageError: If the directory cannot be created or the file
                cannot be written.
        """

        path = self.path
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(token.encode("utf-8"))
        except OSError as exc:
            raise StorageError(f"Failed to store token at {path}: {exc}") from exc

        logger.debug("Saved token to %s", path)
