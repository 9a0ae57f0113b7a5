"""
Local identity provider for the JSON file backend.
"""

import uuid
from typing import Optional

from ..domain.exceptions import AuthenticationError
from ..services.identity import Account
from ..services.store import USERS, DocumentStoreProtocol
from .session_cache import SessionCache


class LocalAuthenticator:
    """
    Account handling without an external identity service.

    Accounts are the entries of the ``users`` collection in the local store
    and passwords are not checked. This is meant for single-machine use and
    for trying the CLI out; use Firebase for anything shared.
    """

    def __init__(self, store: DocumentStoreProtocol, cache: SessionCache):
        self.store = store
        self.cache = cache

    def sign_up(self, email: str, password: str = "") -> Account:
        email = email.strip().lower()
        if self.store.query(USERS, email=email):
            raise AuthenticationError(f"An account for {email} already exists")

        account = Account(uid=uuid.uuid4().hex, email=email)
        self._remember(account)
        return account

    def sign_in(self, email: str, password: str = "") -> Account:
        email = email.strip().lower()
        matches = self.store.query(USERS, email=email)
        if not matches:
            raise AuthenticationError(f"No account for {email}")

        account = Account(uid=matches[0].id, email=email)
        self._remember(account)
        return account

    def current_account(self) -> Optional[Account]:
        session = self.cache.load()
        if not session or "uid" not in session:
            return None
        return Account(uid=session["uid"], email=session.get("email", ""))

    def sign_out(self) -> None:
        self.cache.clear()

    def _remember(self, account: Account) -> None:
        self.cache.save({"uid": account.uid, "email": account.email})
