"""
Persistent storage for the signed-in session.

Sessions are kept in the OS keyring when one is available and fall back to a
plaintext file with owner-only permissions otherwise.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)


KEYRING_SERVICE_NAME = "campslots"


class SessionCache:
    """Stores one session mapping per key (backend + project)."""

    def __init__(self, key: str, cache_file: Path | None = None, use_keyring: bool = True):
        """
        Initialize the cache.

        Args:
            key: Identifier of the session inside the keyring
            cache_file: Optional path to the fallback cache file
            use_keyring: Set to False to skip the keyring entirely
        """
        self.key = key
        self.cache_file = cache_file or Path.home() / ".campslots_session.json"
        self.use_keyring = use_keyring
        self.insecure_storage_warning: Optional[str] = (
            None if use_keyring else "Keyring disabled; using plaintext session file."
        )

    def load(self) -> Optional[Dict[str, Any]]:
        """Load the session from keyring or disk if it exists."""
        serialized = None
        if self.use_keyring:
            try:
                serialized = keyring.get_password(KEYRING_SERVICE_NAME, self.key)
            except KeyringError as exc:
                self._fall_back(f"reading credentials failed: {exc}")

        if serialized is None and self.cache_file.exists():
            try:
                serialized = self.cache_file.read_text(encoding="utf-8")
            except OSError as exc:
                logger.warning("Could not load session file %s: %s", self.cache_file, exc)

        if not serialized:
            return None

        try:
            session = json.loads(serialized)
        except ValueError as exc:
            logger.warning("Could not deserialize session cache: %s", exc)
            return None

        return session if isinstance(session, dict) else None

    def save(self, session: Dict[str, Any]) -> None:
        """Save the session to the keyring, or to the file when that fails."""
        serialized = json.dumps(session)

        if self.use_keyring:
            try:
                keyring.set_password(KEYRING_SERVICE_NAME, self.key, serialized)
                return
            except KeyringError as exc:
                self._fall_back(f"writing credentials failed: {exc}")

        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            self.cache_file.write_text(serialized, encoding="utf-8")
            self.cache_file.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not save session to %s: %s", self.cache_file, exc)

    def clear(self) -> None:
        """Remove the session from every backend."""
        if self.cache_file.exists():
            self.cache_file.unlink()
        if self.use_keyring:
            try:
                keyring.delete_password(KEYRING_SERVICE_NAME, self.key)
            except PasswordDeleteError:
                logger.debug("No session for %s in keyring", self.key)
            except KeyringError as exc:
                logger.warning("Could not remove session from keyring: %s", exc)

    def _fall_back(self, reason: str) -> None:
        logger.warning("Secure credential storage unavailable (%s). Falling back to plaintext cache.", reason)
        self.use_keyring = False
        self.insecure_storage_warning = (
            f"Secure credential storage unavailable ({reason}). "
            f"Falling back to plaintext cache at {self.cache_file}."
        )
