"""Unit tests for IteratorPool."""

from __future__ import annotations

from fakes import STREAM, FakeClock, FakeKinesis

from kinesis_reader.shards.cursors import CursorStore
from kinesis_reader.shards.facade import RetryingKinesis
from kinesis_reader.shards.models import AcquisitionMode, StartPosition
from kinesis_reader.shards.pool import IteratorPool
from kinesis_reader.shards.topology import ShardTopology

THROTTLED = "ProvisionedThroughputExceededException"


def _pool(
    client: FakeKinesis,
    clock: FakeClock,
    positions: dict[str, str] | None = None,
    start_position: StartPosition = StartPosition.TRIM_HORIZON,
) -> IteratorPool:
    facade = RetryingKinesis(client, clock=clock, sleep=clock.sleep)
    return IteratorPool(
        facade,
        ShardTopology(facade, STREAM),
        CursorStore(positions),
        STREAM,
        start_position=start_position,
    )


class TestPrepare:
    def test_first_prepare_plans_and_acquires(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0").add_shard("shard-1")
        pool = _pool(fake_kinesis, clock)

        assert pool.prepare() == ["shard-0", "shard-1"]
        assert pool.token("shard-0") is not None
        assert len(fake_kinesis.calls_to("get_shard_iterator")) == 2

    def test_second_prepare_reuses_tokens(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0")
        pool = _pool(fake_kinesis, clock)
        pool.prepare()

        pool.prepare()

        assert len(fake_kinesis.calls_to("describe_stream")) == 1
        assert len(fake_kinesis.calls_to("get_shard_iterator")) == 1

    def test_discovery_timeout_leaves_pool_unplanned(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0")
        fake_kinesis.fail("describe_stream", THROTTLED, times=None)
        pool = _pool(fake_kinesis, clock)

        assert pool.prepare() == []
        assert pool.frontier == []

        fake_kinesis.clear_failures()
        assert pool.prepare() == ["shard-0"]

    def test_missing_tokens_are_retried_next_prepare(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0").add_shard("shard-1")
        fake_kinesis.fail("get_shard_iterator", THROTTLED, times=None, after=1)
        pool = _pool(fake_kinesis, clock)

        assert pool.prepare() == ["shard-0"]
        assert pool.frontier == ["shard-0", "shard-1"]

        fake_kinesis.clear_failures()
        assert pool.prepare() == ["shard-0", "shard-1"]


class TestReload:
    def test_prunes_positions_for_vanished_shards(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0")
        facade = RetryingKinesis(fake_kinesis, clock=clock, sleep=clock.sleep)
        cursors = CursorStore({"shard-0": "1", "expired-shard": "2"})
        pool = IteratorPool(facade, ShardTopology(facade, STREAM), cursors, STREAM)

        assert pool.reload(facade.deadline(1))
        assert cursors.snapshot() == {"shard-0": "1"}
        request = fake_kinesis.calls_to("get_shard_iterator")[0]
        assert request["ShardIteratorType"] == "AFTER_SEQUENCE_NUMBER"

    def test_stale_graph_used_when_refresh_fails(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0")
        pool = _pool(fake_kinesis, clock)
        pool.prepare()

        fake_kinesis.fail("describe_stream", THROTTLED, times=None)
        pool.reload(clock() + 0.5)

        assert pool.frontier == ["shard-0"]
        assert pool.token("shard-0") is not None


class TestModes:
    def test_cursor_position_wins_over_registered_mode(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0")
        facade = RetryingKinesis(fake_kinesis, clock=clock, sleep=clock.sleep)
        cursors = CursorStore()
        pool = IteratorPool(
            facade,
            ShardTopology(facade, STREAM),
            cursors,
            STREAM,
            start_position=StartPosition.LATEST,
        )
        pool.prepare()
        assert pool.mode_for("shard-0") == AcquisitionMode.from_tail()

        cursors.advance("shard-0", "77")

        assert pool.mode_for("shard-0") == AcquisitionMode.after("77")
        assert pool.mode_for("unknown") is None

    def test_update_ignores_shards_outside_frontier(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0")
        pool = _pool(fake_kinesis, clock)
        pool.prepare()
        token = pool.token("shard-0")

        pool.update("shard-9", token)

        assert pool.token("shard-9") is None

    def test_invalidate_forces_new_token(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0")
        pool = _pool(fake_kinesis, clock)
        pool.prepare()

        pool.invalidate("shard-0")
        assert pool.token("shard-0") is None

        pool.prepare()
        assert pool.token("shard-0") is not None
        assert len(fake_kinesis.calls_to("get_shard_iterator")) == 2

    def test_rewind_reopens_at_sequence_number(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0")
        pool = _pool(fake_kinesis, clock, start_position=StartPosition.LATEST)
        pool.prepare()

        pool.rewind("shard-0", AcquisitionMode.at("000000000001"))
        pool.rewind("shard-9", AcquisitionMode.at("000000000001"))

        assert pool.token("shard-0") is None
        assert pool.mode_for("shard-0") == AcquisitionMode.at("000000000001")
        assert pool.frontier == ["shard-0"]
        pool.prepare()
        request = fake_kinesis.calls_to("get_shard_iterator")[-1]
        assert request["ShardIteratorType"] == "AT_SEQUENCE_NUMBER"


class TestReplaceWithChildren:
    def test_children_registered_from_start(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0")
        fake_kinesis.split("shard-0", "shard-1", "shard-2")
        pool = _pool(fake_kinesis, clock)
        pool.prepare()

        assert pool.replace_with_children("shard-0", clock() + 1)

        assert pool.frontier == ["shard-1", "shard-2"]
        assert pool.mode_for("shard-1") == AcquisitionMode.from_start()
        # tokens are acquired on the next prepare
        assert pool.token("shard-1") is None
        assert pool.prepare() == ["shard-1", "shard-2"]

    def test_children_discovered_by_refresh(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0")
        pool = _pool(fake_kinesis, clock)
        pool.prepare()
        fake_kinesis.split("shard-0", "shard-1")

        assert pool.replace_with_children("shard-0", clock() + 1)
        assert pool.frontier == ["shard-1"]

    def test_parked_when_children_cannot_be_discovered(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0")
        pool = _pool(fake_kinesis, clock)
        pool.prepare()
        fake_kinesis.split("shard-0", "shard-1")
        fake_kinesis.fail("describe_stream", THROTTLED, times=None)

        assert not pool.replace_with_children("shard-0", clock() + 0.5)
        assert pool.pending_parents == ["shard-0"]
        assert pool.frontier == []

        fake_kinesis.clear_failures()
        assert pool.prepare() == ["shard-1"]
        assert pool.pending_parents == []

    def test_merge_registers_child_once(self, fake_kinesis, clock):
        fake_kinesis.add_shard("shard-0").add_shard("shard-1")
        pool = _pool(fake_kinesis, clock)
        pool.prepare()
        fake_kinesis.merge("shard-0", "shard-1", "shard-2")

        assert pool.replace_with_children("shard-0", clock() + 1)
        assert not pool.replace_with_children("shard-1", clock() + 1)

        assert pool.frontier == ["shard-2"]
