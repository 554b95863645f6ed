"""Unit tests for CursorStore."""

from __future__ import annotations

from kinesis_reader.shards.cursors import CursorStore
from kinesis_reader.shards.models import AcquisitionMode, SequenceNumber


class TestCursorStore:
    def test_seeded_positions(self):
        store = CursorStore({"shard-1": "20", "shard-0": "10"})

        assert len(store) == 2
        assert "shard-0" in store
        assert store.get("shard-1") == "20"
        assert list(store.snapshot()) == ["shard-0", "shard-1"]

    def test_empty_seed(self):
        store = CursorStore()

        assert len(store) == 0
        assert store.get("shard-0") is None
        assert store.resume_mode("shard-0") is None

    def test_advance_and_resume_mode(self):
        store = CursorStore()
        store.advance("shard-0", SequenceNumber("42"))

        assert store.resume_mode("shard-0") == AcquisitionMode.after("42")

    def test_update_overwrites(self):
        store = CursorStore({"shard-0": "1"})
        store.update({"shard-0": "2", "shard-1": "3"})

        assert store.snapshot() == {"shard-0": "2", "shard-1": "3"}

    def test_prune_drops_unknown_shards(self):
        store = CursorStore({"shard-0": "1", "gone-b": "2", "gone-a": "3"})

        expired = store.prune({"shard-0", "shard-1"})

        assert expired == ["gone-a", "gone-b"]
        assert store.snapshot() == {"shard-0": "1"}

    def test_snapshot_is_a_copy(self):
        store = CursorStore({"shard-0": "1"})
        snapshot = store.snapshot()
        snapshot["shard-0"] = "999"

        assert store.get("shard-0") == "1"
