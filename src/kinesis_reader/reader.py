"""KinesisReader: a Kinesis stream exposed as an iterable of bounded passes."""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from typing import Any

import structlog

from kinesis_reader.config.models import ReaderConfig, RetryConfig
from kinesis_reader.shards.cursors import CursorStore
from kinesis_reader.shards.facade import Clock, RetryingKinesis, Sleep
from kinesis_reader.shards.iterator import PassIterator
from kinesis_reader.shards.models import Record, StartPosition
from kinesis_reader.shards.pool import IteratorPool
from kinesis_reader.shards.topology import ShardGraph, ShardTopology

logger = structlog.get_logger()


class KinesisReader:
    """Reads every record of a stream, one bounded pass at a time.

    Each call to :meth:`iterator` (or ``iter(reader)``) returns a pass that
    issues one ``GetRecords`` per shard and then stops, leaving the caller to
    sleep before the next pass and to save :meth:`current_sequence_numbers`.

    Starting position:

    - With saved sequence numbers, reading resumes after them. Positions on
      closed shards lead on to their children, positions on descendants
      supersede their ancestors, and unread siblings start at the trim
      horizon.
    - Otherwise the reader starts at ``start_position``: the trim horizon of
      the root shards, or the tip (``LATEST``) of every open shard.

    Throttled shard discovery and iterator requests are retried until
    ``timeout`` seconds have passed; throttled ``GetRecords`` calls simply
    return nothing for that shard in the current pass. Errors such as
    ``ResourceNotFoundException`` propagate.

    Not safe for concurrent use; give each worker its own reader.
    """

    def __init__(
        self,
        client: Any,
        stream_name: str,
        *,
        sequence_numbers: Mapping[str, str] | None = None,
        start_position: StartPosition = StartPosition.LATEST,
        timeout: float = 2.5,
        retry: RetryConfig | None = None,
        records_limit: int | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = time.sleep,
    ) -> None:
        self._stream_name = stream_name
        self._records_limit = records_limit
        self._kinesis = RetryingKinesis(client, retry, clock=clock, sleep=sleep)
        self._topology = ShardTopology(self._kinesis, stream_name)
        self._cursors = CursorStore(sequence_numbers)
        self._pool = IteratorPool(
            self._kinesis,
            self._topology,
            self._cursors,
            stream_name,
            start_position=start_position,
            timeout=timeout,
        )
        self._current_pass: PassIterator | None = None

    @classmethod
    def from_config(
        cls,
        client: Any,
        config: ReaderConfig,
        *,
        stream_name: str | None = None,
        sequence_numbers: Mapping[str, str] | None = None,
    ) -> KinesisReader:
        name = stream_name or config.stream_name
        if not name:
            msg = "stream_name must be given either explicitly or in the config"
            raise ValueError(msg)
        return cls(
            client,
            name,
            sequence_numbers=sequence_numbers,
            start_position=config.start_position,
            timeout=config.timeout_seconds,
            retry=config.retry,
            records_limit=config.records_limit,
        )

    # -- configuration ---------------------------------------------------------

    def read_from_trim_horizon(self) -> KinesisReader:
        """Start at the oldest records when no saved position applies."""
        self._pool.start_position = StartPosition.TRIM_HORIZON
        return self

    def with_sequence_numbers(self, sequence_numbers: Mapping[str, str]) -> KinesisReader:
        """Seed saved positions; an empty mapping changes nothing."""
        self._cursors.update(sequence_numbers)
        return self

    def with_timeout(self, seconds: float) -> KinesisReader:
        self._pool.timeout = seconds
        return self

    # -- public API ------------------------------------------------------------

    @property
    def stream_name(self) -> str:
        return self._stream_name

    @property
    def start_position(self) -> StartPosition:
        return self._pool.start_position

    @property
    def shard_graph(self) -> ShardGraph | None:
        return self._topology.graph

    @property
    def frontier(self) -> list[str]:
        """Shards that the next pass will read."""
        return self._pool.frontier

    @property
    def millis_behind_latest(self) -> int:
        """Largest lag reported by any shard during the current pass."""
        if self._current_pass is None:
            return 0
        return self._current_pass.millis_behind_latest

    def iterator(self) -> PassIterator:
        """Start a new pass, closing the previous one if it was not finished."""
        if self._current_pass is not None:
            self._current_pass.close()
        logger.debug(
            "kinesis_reader.pass_started",
            stream=self._stream_name,
            frontier=self._pool.frontier,
        )
        self._current_pass = PassIterator(
            self._kinesis,
            self._pool,
            self._cursors,
            self._stream_name,
            records_limit=self._records_limit,
        )
        return self._current_pass

    def __iter__(self) -> Iterator[Record]:
        return self.iterator()

    def current_sequence_numbers(self) -> dict[str, str]:
        """Copy of the last sequence number returned for each shard.

        Positions are kept for closed shards until the shard expires from the
        stream, so the map can simply be upserted into whatever store the
        caller uses.
        """
        return self._cursors.snapshot()
