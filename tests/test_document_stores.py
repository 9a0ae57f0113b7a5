"""
Tests for the in-memory and JSON file document stores.
"""

import json
import threading

import pytest

from campslots.adapters.json_store import JsonFileDocumentStore
from campslots.adapters.memory_store import InMemoryDocumentStore
from campslots.domain.exceptions import ConcurrentModification, NotFound, StoreError
from campslots.services.store import Write


class TestInMemoryDocumentStore:
    """Tests for InMemoryDocumentStore."""

    def test_create_get_and_versions(self):
        store = InMemoryDocumentStore()
        store.commit([Write.create("camps", "c1", {"title": "A"})])

        doc = store.get("camps", "c1")

        assert doc.data == {"title": "A"}
        assert doc.version == 1

        store.commit([Write.update("camps", "c1", {"venue": "Hall"}, expected_version=1)])

        doc = store.get("camps", "c1")
        assert doc.data == {"title": "A", "venue": "Hall"}
        assert doc.version == 2

    def test_get_missing(self):
        assert InMemoryDocumentStore().get("camps", "nope") is None

    def test_returned_documents_are_copies(self):
        store = InMemoryDocumentStore()
        store.commit([Write.create("camps", "c1", {"slots": [1]})])

        store.get("camps", "c1").data["slots"].append(2)

        assert store.get("camps", "c1").data["slots"] == [1]

    def test_query_by_equality(self):
        store = InMemoryDocumentStore()
        store.commit([
            Write.create("registrations", "r1", {"donorId": "d1", "campId": "c1"}),
            Write.create("registrations", "r2", {"donorId": "d2", "campId": "c1"}),
            Write.create("registrations", "r3", {"donorId": "d1", "campId": "c2"}),
        ])

        assert [d.id for d in store.query("registrations", campId="c1")] == ["r1", "r2"]
        assert [d.id for d in store.query("registrations", donorId="d1", campId="c2")] == ["r3"]
        assert len(store.query("registrations")) == 3
        assert store.query("unknown") == []

    def test_create_existing_conflicts(self):
        store = InMemoryDocumentStore()
        store.commit([Write.create("camps", "c1", {})])

        with pytest.raises(ConcurrentModification):
            store.commit([Write.create("camps", "c1", {})])

    def test_stale_version_conflicts(self):
        store = InMemoryDocumentStore()
        store.commit([Write.create("camps", "c1", {"n": 1})])
        store.commit([Write.update("camps", "c1", {"n": 2})])

        with pytest.raises(ConcurrentModification):
            store.commit([Write.update("camps", "c1", {"n": 3}, expected_version=1)])
        with pytest.raises(ConcurrentModification):
            store.commit([Write.delete("camps", "c1", expected_version=1)])

    def test_update_missing_document(self):
        with pytest.raises(NotFound):
            InMemoryDocumentStore().commit([Write.update("camps", "nope", {"n": 1})])

    def test_delete_missing_is_noop(self):
        InMemoryDocumentStore().commit([Write.delete("camps", "nope")])

    def test_failed_commit_applies_nothing(self):
        store = InMemoryDocumentStore()
        store.commit([Write.create("camps", "c1", {"n": 1})])

        with pytest.raises(ConcurrentModification):
            store.commit([
                Write.update("camps", "c1", {"n": 2}),
                Write.create("registrations", "r1", {}),
                Write.create("camps", "c1", {}),
            ])

        assert store.get("camps", "c1").data == {"n": 1}
        assert store.get("registrations", "r1") is None

    def test_set_replaces_document(self):
        store = InMemoryDocumentStore()
        store.commit([Write.create("users", "u1", {"name": "A", "role": "donor"})])
        store.commit([Write.set("users", "u1", {"name": "B"})])

        assert store.get("users", "u1").data == {"name": "B"}


class TestJsonFileDocumentStore:
    """Tests for JsonFileDocumentStore."""

    def test_persists_between_instances(self, tmp_path):
        data_file = tmp_path / "nested" / "data.json"
        JsonFileDocumentStore(data_file).commit([Write.create("camps", "c1", {"title": "A"})])

        doc = JsonFileDocumentStore(data_file).get("camps", "c1")

        assert doc.data == {"title": "A"}
        assert doc.version == 1
        raw = json.loads(data_file.read_text(encoding="utf-8"))
        assert raw["camps"]["c1"] == {"version": 1, "data": {"title": "A"}}

    def test_sees_writes_of_other_instances(self, tmp_path):
        data_file = tmp_path / "data.json"
        first = JsonFileDocumentStore(data_file)
        second = JsonFileDocumentStore(data_file)
        first.commit([Write.create("camps", "c1", {"n": 1})])
        stale_version = second.get("camps", "c1").version

        first.commit([Write.update("camps", "c1", {"n": 2})])

        with pytest.raises(ConcurrentModification):
            second.commit([Write.update("camps", "c1", {"n": 3}, expected_version=stale_version)])
        assert second.get("camps", "c1").data == {"n": 2}

    def test_missing_file_is_empty(self, tmp_path):
        store = JsonFileDocumentStore(tmp_path / "absent.json")

        assert store.query("camps") == []

    def test_corrupt_file(self, tmp_path):
        data_file = tmp_path / "data.json"
        data_file.write_text("{not json", encoding="utf-8")

        with pytest.raises(StoreError):
            JsonFileDocumentStore(data_file)

    def test_commit_waits_for_other_instance(self, tmp_path):
        """A commit racing another instance's commit sees its write and conflicts."""
        data_file = tmp_path / "data.json"
        first = JsonFileDocumentStore(data_file)
        second = JsonFileDocumentStore(data_file)
        first.commit([Write.create("camps", "c1", {"slots": []})])

        errors = []
        racer = threading.Thread(target=lambda: _commit_capturing(
            first, [Write.update("camps", "c1", {"slots": ["d1"]}, expected_version=1)], errors
        ))
        reload = second._reload

        def reload_then_race():
            reload()
            racer.start()
            racer.join(timeout=0.3)
            assert racer.is_alive()

        second._reload = reload_then_race
        second.commit([Write.update("camps", "c1", {"slots": ["d2"]}, expected_version=1)])
        racer.join(timeout=5)

        assert not racer.is_alive()
        assert len(errors) == 1 and isinstance(errors[0], ConcurrentModification)
        doc = JsonFileDocumentStore(data_file).get("camps", "c1")
        assert doc.data == {"slots": ["d2"]}
        assert doc.version == 2


def _commit_capturing(store, writes, errors):
    try:
        store.commit(writes)
    except ConcurrentModification as exc:
        errors.append(exc)
