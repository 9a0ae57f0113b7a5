"""
Tests for the Firestore REST document store.
"""

from typing import Any, Dict, List

import pytest
import requests

from campslots.adapters import firestore_client
from campslots.adapters.firestore_client import (
    FirestoreDocumentStore,
    decode_fields,
    encode_fields,
)
from campslots.domain.exceptions import ConcurrentModification, NotFound, StoreError
from campslots.services.store import Write

BASE = "https://firestore.googleapis.com/v1/projects/demo/databases/(default)/documents"
NAME = "projects/demo/databases/(default)/documents"


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class FakeRequests:
    """Records requests and answers them from a queue."""

    def __init__(self, responses: List[FakeResponse]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, method, url, headers=None, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "headers": headers, **kwargs})
        return self.responses.pop(0)


@pytest.fixture
def fake(monkeypatch):
    def install(*responses):
        recorder = FakeRequests(list(responses))
        monkeypatch.setattr(firestore_client.requests, "request", recorder)
        return recorder
    return install


def test_value_encoding():
    data = {
        "title": "Drive",
        "slotCapacity": 5,
        "ratio": 0.5,
        "open": True,
        "donorId": None,
        "slots": [{"start": "09:00", "booked": False}],
    }

    encoded = encode_fields(data)

    assert encoded["slotCapacity"] == {"integerValue": "5"}
    assert encoded["open"] == {"booleanValue": True}
    assert encoded["donorId"] == {"nullValue": None}
    assert encoded["slots"]["arrayValue"]["values"][0]["mapValue"]["fields"]["start"] == {"stringValue": "09:00"}
    assert decode_fields(encoded) == data


def test_empty_array_decodes():
    assert decode_fields({"slots": {"arrayValue": {}}}) == {"slots": []}


class TestFirestoreDocumentStore:
    """Tests for FirestoreDocumentStore."""

    def test_get_document(self, fake):
        recorder = fake(FakeResponse(200, {
            "name": f"{NAME}/camps/c1",
            "fields": {"title": {"stringValue": "Drive"}},
            "updateTime": "2030-01-01T10:00:00.000001Z",
        }))
        store = FirestoreDocumentStore("demo", token_provider=lambda: "id-token")

        doc = store.get("camps", "c1")

        assert doc.collection == "camps"
        assert doc.id == "c1"
        assert doc.data == {"title": "Drive"}
        assert doc.version == "2030-01-01T10:00:00.000001Z"
        assert recorder.calls[0]["url"] == f"{BASE}/camps/c1"
        assert recorder.calls[0]["headers"]["Authorization"] == "Bearer id-token"

    def test_get_missing_document(self, fake):
        fake(FakeResponse(404, {"error": {"status": "NOT_FOUND", "message": "missing"}}))

        assert FirestoreDocumentStore("demo").get("camps", "nope") is None

    def test_query_builds_filters(self, fake):
        recorder = fake(FakeResponse(200, [
            {"document": {"name": f"{NAME}/registrations/r1", "fields": {"donorId": {"stringValue": "d1"}}, "updateTime": "t1"}},
            {"readTime": "t2"},
        ]))
        store = FirestoreDocumentStore("demo")

        docs = store.query("registrations", donorId="d1", campId="c1")

        assert [d.id for d in docs] == ["r1"]
        query = recorder.calls[0]["json"]["structuredQuery"]
        assert query["from"] == [{"collectionId": "registrations"}]
        filters = query["where"]["compositeFilter"]["filters"]
        assert [f["fieldFilter"]["field"]["fieldPath"] for f in filters] == ["donorId", "campId"]
        assert "Authorization" not in recorder.calls[0]["headers"]

    def test_query_without_filters(self, fake):
        recorder = fake(FakeResponse(200, [{"readTime": "t"}]))

        assert FirestoreDocumentStore("demo").query("camps") == []
        assert "where" not in recorder.calls[0]["json"]["structuredQuery"]

    def test_commit_encodes_preconditions(self, fake):
        recorder = fake(FakeResponse(200, {"writeResults": []}))
        store = FirestoreDocumentStore("demo")

        store.commit([
            Write.update("camps", "c1", {"slots": []}, expected_version="v1"),
            Write.create("registrations", "r1", {"donorId": "d1"}),
            Write.delete("registrations", "r0"),
        ])

        writes = recorder.calls[0]["json"]["writes"]
        assert recorder.calls[0]["url"] == f"{BASE}:commit"
        assert writes[0]["update"]["name"] == f"{NAME}/camps/c1"
        assert writes[0]["updateMask"] == {"fieldPaths": ["slots"]}
        assert writes[0]["currentDocument"] == {"updateTime": "v1"}
        assert writes[1]["currentDocument"] == {"exists": False}
        assert "updateMask" not in writes[1]
        assert writes[2] == {"delete": f"{NAME}/registrations/r0"}

    def test_large_commit_is_chunked(self, fake):
        recorder = fake(FakeResponse(200, {}), FakeResponse(200, {}))

        FirestoreDocumentStore("demo").commit([Write.delete("registrations", f"r{i}") for i in range(501)])

        assert [len(call["json"]["writes"]) for call in recorder.calls] == [500, 1]

    @pytest.mark.parametrize(
        "status_code, status, expected",
        [
            (400, "FAILED_PRECONDITION", ConcurrentModification),
            (409, "ABORTED", ConcurrentModification),
            (409, "ALREADY_EXISTS", ConcurrentModification),
            (404, "NOT_FOUND", NotFound),
            (500, "INTERNAL", StoreError),
        ],
    )
    def test_commit_errors(self, fake, status_code, status, expected):
        fake(FakeResponse(status_code, {"error": {"status": status, "message": "nope"}}))

        with pytest.raises(expected):
            FirestoreDocumentStore("demo").commit([Write.update("camps", "c1", {"n": 1}, expected_version="v")])

    def test_transport_error(self, monkeypatch):
        def boom(*args, **kwargs):
            raise requests.exceptions.ConnectionError("offline")

        monkeypatch.setattr(firestore_client.requests, "request", boom)

        with pytest.raises(StoreError, match="offline"):
            FirestoreDocumentStore("demo").get("camps", "c1")
