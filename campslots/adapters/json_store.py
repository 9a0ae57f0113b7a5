"""
Document store persisted to a local JSON file.

Each CLI invocation reads the file before every operation and rewrites it
after every commit. A commit holds an exclusive lock on a sidecar
``<data_file>.lock`` from the reload until the file is replaced, so version
checks also catch changes made by another invocation in between. The lock
uses ``fcntl`` and is POSIX only.
"""

import fcntl
import json
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence

from ..domain.exceptions import StoreError
from ..services.store import StoredDocument, Write
from .memory_store import Collections, InMemoryDocumentStore

logger = logging.getLogger(__name__)


class JsonFileDocumentStore(InMemoryDocumentStore):
    """
    File-backed variant of the in-memory store.

    File layout:
    {
        "camps": {
            "camp_1700000000000_uid": {"version": 3, "data": {...}}
        },
        "registrations": {...},
        "users": {...}
    }
    """

    def __init__(self, data_file: Path):
        self.data_file = Path(data_file).expanduser()
        super().__init__(self._load())

    def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        self._reload()
        return super().get(collection, doc_id)

    def query(self, collection: str, **equals: Any) -> List[StoredDocument]:
        self._reload()
        return super().query(collection, **equals)

    def commit(self, writes: Sequence[Write]) -> None:
        with self._file_lock():
            self._reload()
            super().commit(writes)

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        lock_file = self.data_file.with_suffix(self.data_file.suffix + ".lock")
        try:
            lock_file.parent.mkdir(parents=True, exist_ok=True)
            handle = open(lock_file, "a+", encoding="utf-8")
        except OSError as exc:
            raise StoreError(f"Could not open lock file {lock_file}: {exc}") from exc

        with handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _reload(self) -> None:
        collections = self._load()
        with self._lock:
            self._collections = collections

    def _load(self) -> Collections:
        if not self.data_file.exists():
            return {}

        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                raw = json.load(f) or {}
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Could not read data file {self.data_file}: {exc}") from exc

        if not isinstance(raw, dict):
            raise StoreError(f"Data file {self.data_file} must contain a mapping at the root level.")

        return {
            collection: {
                doc_id: (entry["data"], int(entry["version"]))
                for doc_id, entry in documents.items()
            }
            for collection, documents in raw.items()
        }

    def _persist(self) -> None:
        payload = {
            collection: {
                doc_id: {"version": version, "data": data}
                for doc_id, (data, version) in documents.items()
            }
            for collection, documents in self._collections.items()
        }

        tmp_file = self.data_file.with_suffix(self.data_file.suffix + ".tmp")
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            os.replace(tmp_file, self.data_file)
        except OSError as exc:
            raise StoreError(f"Could not write data file {self.data_file}: {exc}") from exc

        logger.debug("Saved %s", self.data_file)
