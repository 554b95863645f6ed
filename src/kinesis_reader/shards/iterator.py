"""Single pass over the frontier: one ``GetRecords`` call per shard."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from enum import StrEnum

import structlog
from botocore.exceptions import ClientError

from kinesis_reader.errors import PassExhaustedError, is_expired_iterator
from kinesis_reader.shards.cursors import CursorStore
from kinesis_reader.shards.facade import RetryingKinesis
from kinesis_reader.shards.models import AcquisitionMode, Record
from kinesis_reader.shards.pool import IteratorPool

logger = structlog.get_logger()


class PassState(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    EXHAUSTED = "exhausted"


class PassIterator(Iterator[Record]):
    """Iterates the records returned by one sweep across the frontier.

    Shards are visited in shard-id order and each is read once, so a pass is
    bounded and the caller decides how long to sleep before the next one.
    Records within a shard keep their stream order. The saved sequence
    number for a shard moves forward as each record is handed out.

    A pass is single-use. Once exhausted (or closed because a newer pass was
    started) iterating it again raises :class:`PassExhaustedError`.
    """

    def __init__(
        self,
        kinesis: RetryingKinesis,
        pool: IteratorPool,
        cursors: CursorStore,
        stream_name: str,
        *,
        records_limit: int | None = None,
    ) -> None:
        self._kinesis = kinesis
        self._pool = pool
        self._cursors = cursors
        self._stream_name = stream_name
        self._records_limit = records_limit
        self._state = PassState.IDLE
        self._shard_ids: deque[str] | None = None
        self._buffer: deque[Record] = deque()
        # closed shard whose children are swapped in once its records are handed out
        self._closed_shard_id: str | None = None
        self.millis_behind_latest = 0

    @property
    def state(self) -> PassState:
        return self._state

    def __iter__(self) -> PassIterator:
        if self._state == PassState.EXHAUSTED:
            msg = f"pass over {self._stream_name} is exhausted; start a new one"
            raise PassExhaustedError(msg)
        return self

    def __next__(self) -> Record:
        if not self.has_next():
            raise StopIteration
        record = self._buffer.popleft()
        self._cursors.advance(record.shard_id, record.sequence_number)
        return record

    def has_next(self) -> bool:
        if not self._buffer and self._state != PassState.EXHAUSTED:
            self._fill()
        return bool(self._buffer)

    def peek(self) -> Record | None:
        """The next record without handing it out; ``None`` once the pass is done."""
        return self._buffer[0] if self.has_next() else None

    def close(self) -> None:
        """End the pass early.

        If records were fetched but not handed out, the shard is re-opened
        at the first of them on the next pass.
        """
        if self._buffer:
            unread = self._buffer[0]
            self._pool.rewind(
                unread.shard_id, AcquisitionMode.at(unread.sequence_number)
            )
            self._buffer.clear()
            self._closed_shard_id = None
        else:
            self._retire_closed_shard()
        self._state = PassState.EXHAUSTED

    # -- internals -------------------------------------------------------------

    def _fill(self) -> None:
        if self._shard_ids is None:
            self._shard_ids = deque(self._pool.prepare())
        self._retire_closed_shard()

        while not self._buffer and self._shard_ids:
            self._state = PassState.FETCHING
            self._read_shard(self._shard_ids.popleft())
            if not self._buffer:
                self._retire_closed_shard()

        if not self._buffer:
            self._state = PassState.EXHAUSTED

    def _read_shard(self, shard_id: str) -> None:
        token = self._pool.token(shard_id)
        if token is None:
            # resharded or reloaded since the pass started
            return

        logger.debug("pass_iterator.read_shard", stream=self._stream_name, shard=shard_id)
        try:
            batch = self._kinesis.get_records(token, self._records_limit)
        except ClientError as exc:
            if not is_expired_iterator(exc):
                raise
            logger.warning(
                "pass_iterator.iterator_expired",
                stream=self._stream_name,
                shard=shard_id,
            )
            self._pool.reload(self._kinesis.deadline(self._pool.timeout))
            return

        if batch is None:
            return

        self.millis_behind_latest = max(
            self.millis_behind_latest, batch.millis_behind_latest
        )
        self._buffer.extend(Record.from_response(shard_id, r) for r in batch.records)
        if batch.next_token is None:
            self._closed_shard_id = shard_id
        else:
            self._pool.update(shard_id, batch.next_token)

    def _retire_closed_shard(self) -> None:
        if self._closed_shard_id is None:
            return
        shard_id, self._closed_shard_id = self._closed_shard_id, None
        self._pool.replace_with_children(
            shard_id, self._kinesis.deadline(self._pool.timeout)
        )
