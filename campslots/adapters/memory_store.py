"""
In-process document store.

Used by the tests and as the base of the JSON file store. Documents carry an
integer version that increases with every write.
"""

import copy
import logging
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..domain.exceptions import ConcurrentModification, NotFound, StoreError
from ..services.store import StoredDocument, Write

logger = logging.getLogger(__name__)

# collection -> doc id -> (data, version)
Collections = Dict[str, Dict[str, Tuple[Dict[str, Any], int]]]


class InMemoryDocumentStore:
    """
    Dict-backed store with atomic, version-checked commits.

    A commit validates every write against a staged copy of the affected
    collections and only swaps the copy in once all writes succeeded.
    """

    def __init__(self, collections: Optional[Collections] = None):
        self._collections: Collections = collections or {}
        self._lock = threading.Lock()

    def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        with self._lock:
            entry = self._collections.get(collection, {}).get(doc_id)
            if entry is None:
                return None
            data, version = entry
            return StoredDocument(collection, doc_id, copy.deepcopy(data), version)

    def query(self, collection: str, **equals: Any) -> List[StoredDocument]:
        with self._lock:
            documents = []
            for doc_id, (data, version) in self._collections.get(collection, {}).items():
                if all(data.get(name) == value for name, value in equals.items()):
                    documents.append(StoredDocument(collection, doc_id, copy.deepcopy(data), version))
            return documents

    def commit(self, writes: Sequence[Write]) -> None:
        with self._lock:
            staged = {
                name: dict(self._collections.get(name, {}))
                for name in {write.collection for write in writes}
            }

            for write in writes:
                self._apply(staged.setdefault(write.collection, {}), write)

            self._collections.update(staged)
            self._persist()

    def _apply(self, documents: Dict[str, Tuple[Dict[str, Any], int]], write: Write) -> None:
        current = documents.get(write.doc_id)
        path = f"{write.collection}/{write.doc_id}"

        if write.expected_version is not None:
            if current is None:
                raise ConcurrentModification(f"{path} no longer exists")
            if current[1] != write.expected_version:
                raise ConcurrentModification(
                    f"{path} is at version {current[1]}, expected {write.expected_version}"
                )

        next_version = current[1] + 1 if current else 1

        if write.kind == "create":
            if current is not None:
                raise ConcurrentModification(f"{path} already exists")
            documents[write.doc_id] = (copy.deepcopy(write.data), next_version)
        elif write.kind == "set":
            documents[write.doc_id] = (copy.deepcopy(write.data), next_version)
        elif write.kind == "update":
            if current is None:
                raise NotFound(f"{path} not found")
            merged = copy.deepcopy(current[0])
            merged.update(copy.deepcopy(write.data))
            documents[write.doc_id] = (merged, next_version)
        elif write.kind == "delete":
            documents.pop(write.doc_id, None)
        else:
            raise StoreError(f"Unknown write kind '{write.kind}'")

    def _persist(self) -> None:
        """Hook for subclasses that keep a copy outside the process."""
