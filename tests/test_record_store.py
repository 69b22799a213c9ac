"""
Tests for the generic record store.
"""

import pytest

from vetnet.services.record_store import DuplicateKeyError, RecordStore


class TestRecordStore:
    """Basic record operations."""

    def test_insert_and_get(self, store):
        store.insert("nets", "n1", {"id": "n1", "name": "Alpha"})
        assert store.get("nets", "n1") == {"id": "n1", "name": "Alpha"}
        assert store.get("nets", "missing") is None

    def test_insert_duplicate_key_fails(self, store):
        store.insert("nets", "n1", {"id": "n1"})
        with pytest.raises(DuplicateKeyError):
            store.insert("nets", "n1", {"id": "n1"})

    def test_get_returns_copy(self, store):
        store.insert("nets", "n1", {"id": "n1", "name": "Alpha"})
        record = store.get("nets", "n1")
        record["name"] = "Changed"
        assert store.get("nets", "n1")["name"] == "Alpha"

    def test_update_merges_fields(self, store):
        store.insert("nets", "n1", {"id": "n1", "name": "Alpha", "status": "live"})
        updated = store.update("nets", "n1", status="ended")
        assert updated == {"id": "n1", "name": "Alpha", "status": "ended"}

    def test_update_missing_key_fails(self, store):
        with pytest.raises(KeyError):
            store.update("nets", "nope", status="ended")

    def test_delete(self, store):
        store.insert("nets", "n1", {"id": "n1"})
        assert store.delete("nets", "n1") is True
        assert store.delete("nets", "n1") is False
        assert store.get("nets", "n1") is None


class TestQuery:
    """Equality filters and ordering."""

    @pytest.fixture
    def rows(self, store):
        store.insert("p", "a", {"name": "a", "role": "host", "rank": 3, "left_at": None})
        store.insert("p", "b", {"name": "b", "role": "listener", "rank": 1, "left_at": None})
        store.insert("p", "c", {"name": "c", "role": "speaker", "rank": 2, "left_at": "2025-01-01T00:00:00"})
        return store

    def test_insertion_order_by_default(self, rows):
        assert [r["name"] for r in rows.query("p")] == ["a", "b", "c"]

    def test_descending_without_field_reverses_insertion_order(self, rows):
        assert [r["name"] for r in rows.query("p", descending=True)] == ["c", "b", "a"]

    def test_filter_by_none(self, rows):
        assert [r["name"] for r in rows.query("p", left_at=None)] == ["a", "b"]

    def test_filter_by_membership(self, rows):
        found = rows.query("p", role=["host", "speaker"])
        assert [r["name"] for r in found] == ["a", "c"]

    def test_order_by_field_and_limit(self, rows):
        assert [r["name"] for r in rows.query("p", order_by="rank")] == ["b", "c", "a"]
        assert [r["name"] for r in rows.query("p", order_by="rank", descending=True, limit=1)] == ["a"]

    def test_count(self, rows):
        assert rows.count("p", left_at=None) == 2
        assert rows.count("unknown") == 0


class TestTransactions:
    """All-or-nothing units of work."""

    def test_commit(self, store):
        with store.transaction():
            store.insert("nets", "n1", {"id": "n1"})
            store.insert("participants", "n1:u1", {"user_id": "u1"})
        assert store.get("nets", "n1") is not None
        assert store.get("participants", "n1:u1") is not None

    def test_rollback_undoes_every_write(self, store):
        store.insert("nets", "n0", {"id": "n0", "status": "live"})

        with pytest.raises(RuntimeError):
            with store.transaction():
                store.insert("nets", "n1", {"id": "n1"})
                store.update("nets", "n0", status="ended")
                store.delete("nets", "n0")
                raise RuntimeError("boom")

        assert store.get("nets", "n1") is None
        assert store.get("nets", "n0") == {"id": "n0", "status": "live"}

    def test_nested_transaction_joins_outer(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    store.insert("nets", "n1", {"id": "n1"})
                raise RuntimeError("boom")
        assert store.get("nets", "n1") is None


class TestPersistence:
    """JSON file round trip across store instances."""

    def test_reload_from_file(self, tmp_path):
        path = str(tmp_path / "store.json")
        first = RecordStore(path)
        first.insert("nets", "n1", {"id": "n1", "name": "Alpha"})

        second = RecordStore(path)
        assert second.get("nets", "n1") == {"id": "n1", "name": "Alpha"}

    def test_failed_transaction_not_persisted(self, tmp_path):
        path = str(tmp_path / "store.json")
        store = RecordStore(path)
        store.insert("nets", "n1", {"id": "n1"})

        with pytest.raises(RuntimeError):
            with store.transaction():
                store.insert("nets", "n2", {"id": "n2"})
                raise RuntimeError("boom")

        assert RecordStore(path).get("nets", "n2") is None

    def test_missing_file_starts_empty(self, tmp_path):
        store = RecordStore(str(tmp_path / "absent.json"))
        assert store.query("nets") == []

    def test_one_save_per_transaction(self, tmp_path, monkeypatch):
        store = RecordStore(str(tmp_path / "store.json"))
        saves = []
        monkeypatch.setattr(store, "save", lambda: saves.append(1))

        with store.transaction():
            store.insert("nets", "n1", {"id": "n1"})
            store.insert("net_participants", "n1:u1", {"user_id": "u1"})
            store.update("nets", "n1", status="live")
        store.insert("nets", "n2", {"id": "n2"})

        assert len(saves) == 2
