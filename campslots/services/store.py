"""
Document store contract shared by the service layer and the store adapters.

Stores hold plain dict documents grouped in collections. Every read returns
the store's version token for the document, and every write may carry that
token as a precondition so that read-modify-write cycles fail loudly instead
of silently overwriting a concurrent change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

CAMPS = "camps"
REGISTRATIONS = "registrations"
USERS = "users"


@dataclass
class StoredDocument:
    """A document as read from a store."""
    collection: str
    id: str
    data: Dict[str, Any]
    version: Any = None


@dataclass
class Write:
    """
    One write inside an atomic commit.

    Kinds:
        create: the document must not exist yet
        set:    replace the whole document (creating it if needed)
        update: merge the given fields into an existing document
        delete: remove the document; deleting a missing document is a no-op
                unless a version is expected
    """
    kind: str
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    expected_version: Any = None

    @classmethod
    def create(cls, collection: str, doc_id: str, data: Dict[str, Any]) -> "Write":
        return cls("create", collection, doc_id, dict(data))

    @classmethod
    def set(cls, collection: str, doc_id: str, data: Dict[str, Any], expected_version: Any = None) -> "Write":
        return cls("set", collection, doc_id, dict(data), expected_version)

    @classmethod
    def update(cls, collection: str, doc_id: str, data: Dict[str, Any], expected_version: Any = None) -> "Write":
        return cls("update", collection, doc_id, dict(data), expected_version)

    @classmethod
    def delete(cls, collection: str, doc_id: str, expected_version: Any = None) -> "Write":
        return cls("delete", collection, doc_id, {}, expected_version)


class DocumentStoreProtocol(Protocol):
    """Protocol describing the document store behaviour needed by the service."""

    def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        """Return one document, or None if it does not exist."""

    def query(self, collection: str, **equals: Any) -> List[StoredDocument]:
        """Return every document whose fields equal the given values."""

    def commit(self, writes: Sequence[Write]) -> None:
        """
        Apply all writes atomically.

        Raises:
            ConcurrentModification: If any precondition does not hold
            NotFound: If an update targets a missing document
            StoreError: If the store cannot be reached or written
        """
