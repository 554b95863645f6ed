"""Last-read sequence number per shard."""

from __future__ import annotations

from collections.abc import Collection, Mapping

import structlog

from kinesis_reader.shards.models import AcquisitionMode, SequenceNumber

logger = structlog.get_logger()


class CursorStore:
    """Holds ``shard_id -> sequence number`` for the records handed out so far.

    Entries stay after a shard is exhausted: a saved number at the end of a
    closed shard is what tells a restarted reader to continue with the
    children. They are only dropped by :meth:`prune` once the shard has left
    the stream.
    """

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._positions: dict[str, SequenceNumber] = {
            shard_id: SequenceNumber(seqnum)
            for shard_id, seqnum in (initial or {}).items()
        }

    def __contains__(self, shard_id: object) -> bool:
        return shard_id in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    def get(self, shard_id: str) -> SequenceNumber | None:
        return self._positions.get(shard_id)

    def update(self, positions: Mapping[str, str]) -> None:
        for shard_id, seqnum in positions.items():
            self._positions[shard_id] = SequenceNumber(seqnum)

    def advance(self, shard_id: str, sequence_number: SequenceNumber) -> None:
        """Record that *sequence_number* on *shard_id* was handed to the caller."""
        self._positions[shard_id] = sequence_number

    def prune(self, live_shard_ids: Collection[str]) -> list[str]:
        """Drop positions for shards that no longer exist; return their ids."""
        expired = sorted(s for s in self._positions if s not in live_shard_ids)
        for shard_id in expired:
            del self._positions[shard_id]
        if expired:
            logger.info("cursor_store.pruned", shards=expired)
        return expired

    def resume_mode(self, shard_id: str) -> AcquisitionMode | None:
        seqnum = self._positions.get(shard_id)
        return AcquisitionMode.after(seqnum) if seqnum is not None else None

    def snapshot(self) -> dict[str, str]:
        """Copy of the current positions, ordered by shard id."""
        return dict(sorted(self._positions.items()))
