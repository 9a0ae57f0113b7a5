"""
Cloud Firestore document store using the Firestore REST API.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from ..domain.exceptions import ConcurrentModification, NotFound, StoreError
from ..services.store import StoredDocument, Write

logger = logging.getLogger(__name__)

# Firestore rejects commits with more writes than this
MAX_WRITES_PER_COMMIT = 500

CONFLICT_STATUSES = {"ABORTED", "ALREADY_EXISTS", "FAILED_PRECONDITION"}


class FirestoreDocumentStore:
    """
    Store backed by Cloud Firestore.

    The document ``updateTime`` serves as the version token, and version
    preconditions become Firestore ``currentDocument`` preconditions, so a
    concurrent write makes the whole commit fail on the server.
    """

    FIRESTORE_API_ENDPOINT = "https://firestore.googleapis.com/v1"

    def __init__(
        self,
        project_id: str,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        database: str = "(default)",
        timeout: int = 30
    ):
        """
        Initialize the Firestore client.

        Args:
            project_id: Google Cloud / Firebase project id
            token_provider: Returns a Firebase ID token, or None for
                unauthenticated access (emulator, open rules)
            database: Firestore database id
            timeout: Request timeout in seconds
        """
        self.project_id = project_id
        self.token_provider = token_provider
        self.timeout = timeout
        self.database_path = f"projects/{project_id}/databases/{database}"
        self.base_url = f"{self.FIRESTORE_API_ENDPOINT}/{self.database_path}/documents"

    def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        response = self._request("get", f"{self.base_url}/{collection}/{doc_id}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response, f"read {collection}/{doc_id}")
        return self._parse_document(response.json())

    def query(self, collection: str, **equals: Any) -> List[StoredDocument]:
        """
        Run a structured query with equality filters.

        Response format:
        [
            {"document": {"name": "...", "fields": {...}, "updateTime": "..."}, "readTime": "..."},
            {"readTime": "..."}
        ]
        """
        structured_query: Dict[str, Any] = {"from": [{"collectionId": collection}]}

        filters = [
            {
                "fieldFilter": {
                    "field": {"fieldPath": name},
                    "op": "EQUAL",
                    "value": encode_value(value),
                }
            }
            for name, value in equals.items()
        ]
        if len(filters) == 1:
            structured_query["where"] = filters[0]
        elif filters:
            structured_query["where"] = {"compositeFilter": {"op": "AND", "filters": filters}}

        response = self._request(
            "post",
            f"{self.base_url}:runQuery",
            json={"structuredQuery": structured_query}
        )
        self._raise_for_status(response, f"query {collection}")

        return [
            self._parse_document(item["document"])
            for item in response.json()
            if "document" in item
        ]

    def commit(self, writes: Sequence[Write]) -> None:
        """
        Commit writes in as few requests as Firestore allows.

        Up to 500 writes are atomic. Larger batches are split in order and a
        failure in a later chunk leaves the earlier chunks applied.
        """
        encoded = [self._encode_write(write) for write in writes]

        for offset in range(0, len(encoded), MAX_WRITES_PER_COMMIT):
            chunk = encoded[offset:offset + MAX_WRITES_PER_COMMIT]
            response = self._request("post", f"{self.base_url}:commit", json={"writes": chunk})
            self._raise_for_status(response, "commit")

    def _encode_write(self, write: Write) -> Dict[str, Any]:
        name = self._document_name(write.collection, write.doc_id)

        if write.kind == "delete":
            encoded: Dict[str, Any] = {"delete": name}
        else:
            encoded = {"update": {"name": name, "fields": encode_fields(write.data)}}
            if write.kind == "update":
                encoded["updateMask"] = {"fieldPaths": sorted(write.data)}

        if write.expected_version is not None:
            encoded["currentDocument"] = {"updateTime": write.expected_version}
        elif write.kind == "create":
            encoded["currentDocument"] = {"exists": False}
        elif write.kind == "update":
            encoded["currentDocument"] = {"exists": True}

        return encoded

    def _document_name(self, collection: str, doc_id: str) -> str:
        return f"{self.database_path}/documents/{collection}/{doc_id}"

    def _parse_document(self, document: Dict[str, Any]) -> StoredDocument:
        path = document["name"].split("/documents/", 1)[1]
        collection, doc_id = path.rsplit("/", 1)
        return StoredDocument(
            collection=collection,
            id=doc_id,
            data=decode_fields(document.get("fields", {})),
            version=document.get("updateTime"),
        )

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        headers = {"Content-Type": "application/json"}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            return requests.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise StoreError(f"Failed to reach Firestore: {e}") from e

    @staticmethod
    def _raise_for_status(response: requests.Response, action: str) -> None:
        if response.status_code < 400:
            return

        try:
            error = response.json()
            if isinstance(error, list):
                error = error[0]
            error = error.get("error", {})
        except (ValueError, IndexError, AttributeError):
            error = {}

        status = error.get("status", "")
        message = error.get("message", response.text)

        if response.status_code == 409 or status in CONFLICT_STATUSES:
            raise ConcurrentModification(f"Firestore rejected {action}: {message}")
        if response.status_code == 404 or status == "NOT_FOUND":
            raise NotFound(f"Firestore could not {action}: {message}")

        logger.debug("Firestore error response: %s", response.text)
        raise StoreError(f"Firestore {action} failed ({response.status_code}): {message}")


def encode_value(value: Any) -> Dict[str, Any]:
    """Encode a Python value as a Firestore ``Value``."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(item) for item in value]}}
    raise TypeError(f"Cannot store value of type {type(value).__name__} in Firestore")


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {name: encode_value(value) for name, value in data.items()}


def decode_value(value: Dict[str, Any]) -> Any:
    """Decode a Firestore ``Value`` into a Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return value["timestampValue"]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(item) for item in value["arrayValue"].get("values", [])]
    raise ValueError(f"Unsupported Firestore value: {value}")


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {name: decode_value(value) for name, value in fields.items()}
