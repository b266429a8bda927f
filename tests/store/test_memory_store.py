"""Tests for the in-memory store and shared path helpers."""

import pytest

from innerdecay.store import SERVER_TIMESTAMP, DocumentSnapshot, StoreError, parent_document
from innerdecay.store.base import get_field, new_auto_id, set_field


class TestPathHelpers:
    """Tests for document path helpers."""

    def test_parent_document(self):
        assert parent_document("users/u1/personalities/p1/innerfaces/i1") == (
            "users/u1/personalities/p1"
        )

    def test_top_level_has_no_parent(self):
        assert parent_document("innerfaces/i1") is None

    def test_collection_path_rejected(self):
        with pytest.raises(ValueError):
            parent_document("users/u1/innerfaces")

    def test_snapshot_properties(self):
        snapshot = DocumentSnapshot("users/u1/personalities/p1/innerfaces/i1")
        assert snapshot.id == "i1"
        assert snapshot.parent_path == "users/u1/personalities/p1"

    def test_auto_id(self):
        ids = {new_auto_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(len(i) == 20 and i.isalnum() for i in ids)


class TestDottedFields:
    """Tests for dotted field access."""

    def test_set_nested(self):
        data = {"decaySettings": {"enabled": True}}
        set_field(data, "decaySettings.lastDecayDate", "x")
        assert data == {"decaySettings": {"enabled": True, "lastDecayDate": "x"}}

    def test_set_creates_parents(self):
        data = {}
        set_field(data, "a.b.c", 1)
        assert data == {"a": {"b": {"c": 1}}}

    def test_get_nested(self):
        assert get_field({"a": {"b": 2}}, "a.b") == 2
        assert get_field({"a": 1}, "a.b", default="missing") == "missing"


class TestInMemoryStore:
    """Tests for InMemoryStore."""

    def test_set_and_get_copy(self, store):
        store.set("users/u1", {"tags": ["a"]})
        doc = store.get("users/u1")
        doc["tags"].append("b")
        assert store.get("users/u1") == {"tags": ["a"]}

    def test_get_missing(self, store):
        assert store.get("users/nobody") is None

    def test_server_timestamp_resolved(self, store, now):
        store.set("users/u1", {"seen": SERVER_TIMESTAMP})
        assert store.get("users/u1")["seen"] == now

    def test_query_group_matches_nested_field(self, store):
        store.set("users/u1/personalities/p1/innerfaces/a", {"s": {"on": True}})
        store.set("users/u2/personalities/p1/innerfaces/b", {"s": {"on": False}})
        store.set("innerfaces/c", {"s": {"on": True}})

        results = store.query_group("innerfaces", "s.on", True)
        assert [r.path for r in results] == [
            "innerfaces/c",
            "users/u1/personalities/p1/innerfaces/a",
        ]

    def test_query_group_missing_field_never_matches_none(self, store):
        store.set("innerfaces/a", {})
        assert store.query_group("innerfaces", "s.on", None) == []

    def test_batch_update_and_create(self, store):
        store.set("users/u1/personalities/p1/innerfaces/a", {"score": 5, "s": {"on": True}})
        batch = store.batch()
        batch.update("users/u1/personalities/p1/innerfaces/a", {"score": 3, "s.last": "t"})
        batch.create("users/u1/personalities/p1/history/h1", {"weight": -2})
        assert len(batch) == 2
        batch.commit()

        assert store.get("users/u1/personalities/p1/innerfaces/a") == {
            "score": 3,
            "s": {"on": True, "last": "t"},
        }
        assert store.get("users/u1/personalities/p1/history/h1") == {"weight": -2}
        assert store.commit_log == [2]

    def test_batch_is_atomic(self, store):
        store.set("innerfaces/a", {"score": 5})
        batch = store.batch()
        batch.update("innerfaces/a", {"score": 3})
        batch.update("innerfaces/missing", {"score": 1})
        with pytest.raises(StoreError):
            batch.commit()
        assert store.get("innerfaces/a") == {"score": 5}
        assert store.commit_log == []

    def test_create_existing_fails(self, store):
        store.set("history/h1", {})
        batch = store.batch()
        batch.create("history/h1", {"weight": 1})
        with pytest.raises(StoreError):
            batch.commit()

    def test_batch_commit_once(self, store):
        batch = store.batch()
        batch.commit()
        with pytest.raises(StoreError):
            batch.commit()
        with pytest.raises(StoreError):
            batch.update("innerfaces/a", {})

    def test_new_document_path(self, store):
        path = store.new_document_path("users/u1/personalities/p1/history")
        assert path.startswith("users/u1/personalities/p1/history/")
        assert store.get(path) is None

    def test_new_document_path_rejects_document(self, store):
        with pytest.raises(ValueError):
            store.new_document_path("users/u1")

    def test_list_paths(self, store):
        store.set("innerfaces/a", {})
        store.set("history/h", {})
        assert store.list_paths() == ["history/h", "innerfaces/a"]
        assert store.list_paths("history") == ["history/h"]
