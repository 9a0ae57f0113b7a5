"""
Firebase Authentication using the Identity Toolkit REST API (email/password).
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import requests

from ..domain.exceptions import AuthenticationError
from ..services.identity import Account
from .session_cache import SessionCache

logger = logging.getLogger(__name__)


class FirebaseAuthenticator:
    """
    Signs in against Firebase Auth and keeps the ID token fresh.

    The session (uid, email, ID token, refresh token, expiry) is stored in a
    ``SessionCache``. ``get_id_token`` is handed to the Firestore store as its
    token provider and transparently exchanges the refresh token once the ID
    token is about to expire.
    """

    IDENTITY_ENDPOINT = "https://identitytoolkit.googleapis.com/v1"
    TOKEN_ENDPOINT = "https://securetoken.googleapis.com/v1/token"

    # Refresh this many seconds before the ID token expires
    EXPIRY_MARGIN = 60

    def __init__(self, api_key: str, cache: SessionCache, timeout: int = 30):
        """
        Initialize the authenticator.

        Args:
            api_key: Firebase web API key
            cache: Where the signed-in session is persisted
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.cache = cache
        self.timeout = timeout

    def sign_up(self, email: str, password: str) -> Account:
        data = self._post(
            f"{self.IDENTITY_ENDPOINT}/accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._store_session(data)

    def sign_in(self, email: str, password: str) -> Account:
        data = self._post(
            f"{self.IDENTITY_ENDPOINT}/accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._store_session(data)

    def current_account(self) -> Optional[Account]:
        session = self.cache.load()
        if not session or "uid" not in session:
            return None
        return Account(uid=session["uid"], email=session.get("email", ""))

    def sign_out(self) -> None:
        self.cache.clear()

    def get_id_token(self, force_refresh: bool = False) -> Optional[str]:
        """
        Get a valid ID token, refreshing it when needed.

        Returns:
            The ID token, or None if nobody is signed in

        Raises:
            AuthenticationError: If the refresh token was rejected
        """
        session = self.cache.load()
        if not session:
            return None

        expires_at = float(session.get("expires_at", 0))
        if not force_refresh and time.time() < expires_at - self.EXPIRY_MARGIN:
            return session["id_token"]

        logger.debug("Refreshing Firebase ID token for %s", session.get("email"))
        try:
            response = requests.post(
                self.TOKEN_ENDPOINT,
                params={"key": self.api_key},
                data={"grant_type": "refresh_token", "refresh_token": session["refresh_token"]},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise AuthenticationError(f"Failed to refresh Firebase session: {e}") from e

        payload = self._json_or_error(response, "Token refresh failed")

        session.update(
            id_token=payload["id_token"],
            refresh_token=payload["refresh_token"],
            expires_at=time.time() + int(payload.get("expires_in", 3600)),
        )
        self.cache.save(session)
        return session["id_token"]

    def _post(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = requests.post(url, params={"key": self.api_key}, json=body, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise AuthenticationError(f"Failed to reach Firebase Auth: {e}") from e

        return self._json_or_error(response, "Authentication failed")

    @staticmethod
    def _json_or_error(response: requests.Response, prefix: str) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.status_code >= 400:
            message = payload.get("error", {}).get("message", response.text) if isinstance(payload, dict) else response.text
            raise AuthenticationError(f"{prefix}: {message}")

        return payload

    def _store_session(self, data: Dict[str, Any]) -> Account:
        session = {
            "uid": data["localId"],
            "email": data.get("email", ""),
            "id_token": data["idToken"],
            "refresh_token": data["refreshToken"],
            "expires_at": time.time() + int(data.get("expiresIn", 3600)),
        }
        self.cache.save(session)

        if self.cache.insecure_storage_warning:
            logger.warning(self.cache.insecure_storage_warning)

        return Account(uid=session["uid"], email=session["email"])
