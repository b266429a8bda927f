"""Tests for the collection group scan."""

import pytest

from innerdecay.decay import ScanError, scan_decaying_attributes
from innerdecay.store import StoreError


class TestScanDecayingAttributes:
    """Tests for scan_decaying_attributes."""

    def test_spans_all_owners(self, store, add_innerface):
        """Attributes are found under every user and personality."""
        add_innerface("a", owner="users/u1/personalities/p1")
        add_innerface("b", owner="users/u1/personalities/p2")
        add_innerface("c", owner="users/u2/personalities/p9")

        attributes = scan_decaying_attributes(store)

        assert sorted(a.id for a in attributes) == ["a", "b", "c"]
        assert {a.owner_path for a in attributes} == {
            "users/u1/personalities/p1",
            "users/u1/personalities/p2",
            "users/u2/personalities/p9",
        }

    def test_only_enabled(self, store, add_innerface):
        add_innerface("on")
        add_innerface("off", enabled=False)
        store.set("users/u1/personalities/p1/innerfaces/none", {"currentScore": 3})

        assert [a.id for a in scan_decaying_attributes(store)] == ["on"]

    def test_other_collections_ignored(self, store, add_innerface):
        add_innerface("focus")
        store.set(
            "users/u1/personalities/p1/protocols/x",
            {"decaySettings": {"enabled": True}},
        )
        assert [a.id for a in scan_decaying_attributes(store)] == ["focus"]

    def test_empty(self, store):
        assert scan_decaying_attributes(store) == []

    def test_store_error_becomes_scan_error(self, store, monkeypatch):
        def broken_query(*args, **kwargs):
            raise StoreError("permission denied")

        monkeypatch.setattr(store, "query_group", broken_query)
        with pytest.raises(ScanError, match="permission denied"):
            scan_decaying_attributes(store)
