"""
Identity services: accounts from an authenticator, roles from the users
collection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from ..domain.exceptions import AuthenticationError, NotFound
from ..domain.models import Caller, Role, UserProfile
from .store import USERS, DocumentStoreProtocol, Write

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Account:
    """An authenticated account, before its role is known."""
    uid: str
    email: str


class AuthenticatorProtocol(Protocol):
    """Protocol describing the identity provider behaviour needed by the service."""

    def sign_up(self, email: str, password: str) -> Account:
        """Create an account and keep it signed in."""

    def sign_in(self, email: str, password: str) -> Account:
        """Sign in to an existing account."""

    def current_account(self) -> Optional[Account]:
        """Return the signed-in account, if any."""

    def sign_out(self) -> None:
        """Forget the signed-in account."""


class IdentityService:
    """
    Resolves the signed-in account into a ``Caller`` with a role.

    The role lives in the ``users`` collection, keyed by account uid, so the
    same account keeps its role across sessions.
    """

    def __init__(self, authenticator: AuthenticatorProtocol, store: DocumentStoreProtocol) -> None:
        self._authenticator = authenticator
        self._store = store

    def sign_up(self, email: str, password: str, name: str, role: Role) -> UserProfile:
        account = self._authenticator.sign_up(email, password)
        profile = UserProfile(uid=account.uid, role=role, name=name.strip() or email, email=account.email)
        self._store.commit([Write.set(USERS, profile.uid, profile.to_document())])
        logger.info("Signed up %s as %s", profile.email, profile.role.value)
        return profile

    def sign_in(self, email: str, password: str) -> UserProfile:
        account = self._authenticator.sign_in(email, password)
        return self._profile(account)

    def current_user(self) -> Optional[UserProfile]:
        account = self._authenticator.current_account()
        if account is None:
            return None
        return self._profile(account)

    def require_caller(self) -> Caller:
        """
        Return the signed-in caller.

        Raises:
            AuthenticationError: If nobody is signed in
        """
        profile = self.current_user()
        if profile is None:
            raise AuthenticationError("Not signed in. Run 'campslots login' first.")
        return profile.as_caller()

    def sign_out(self) -> None:
        self._authenticator.sign_out()

    def _profile(self, account: Account) -> UserProfile:
        doc = self._store.get(USERS, account.uid)
        if doc is None:
            raise NotFound(f"No user profile for {account.email}; sign up first")
        return UserProfile.from_document(doc.data)
