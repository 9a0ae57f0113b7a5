"""
Adapters layer - Document stores and identity providers.
"""

from .firebase_authenticator import FirebaseAuthenticator
from .firestore_client import FirestoreDocumentStore
from .json_store import JsonFileDocumentStore
from .local_authenticator import LocalAuthenticator
from .memory_store import InMemoryDocumentStore
from .session_cache import SessionCache

__all__ = [
    "FirebaseAuthenticator",
    "FirestoreDocumentStore",
    "JsonFileDocumentStore",
    "LocalAuthenticator",
    "InMemoryDocumentStore",
    "SessionCache",
]
