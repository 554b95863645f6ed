"""Value types shared by the shard reader.

Two kinds of position are kept apart on purpose:

- ``SequenceNumber`` is the durable cursor. It is what callers save and hand
  back to a new reader.
- ``IteratorToken`` is the short-lived handle returned by ``GetShardIterator``
  and ``GetRecords``. It expires after a few minutes and is never persisted;
  a fresh one is always derived from an ``AcquisitionMode``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, NewType

SequenceNumber = NewType("SequenceNumber", str)


class IteratorType(StrEnum):
    """Kinesis shard iterator types used by the reader."""

    TRIM_HORIZON = "TRIM_HORIZON"
    LATEST = "LATEST"
    AT_SEQUENCE_NUMBER = "AT_SEQUENCE_NUMBER"
    AFTER_SEQUENCE_NUMBER = "AFTER_SEQUENCE_NUMBER"


class StartPosition(StrEnum):
    """Where to start when no saved sequence number applies."""

    TRIM_HORIZON = "trim_horizon"
    LATEST = "latest"


@dataclass(frozen=True, slots=True)
class AcquisitionMode:
    """Instruction used to mint a new iterator token for a shard."""

    iterator_type: IteratorType
    sequence_number: SequenceNumber | None = None

    def __post_init__(self) -> None:
        needs_seqnum = self.iterator_type in (
            IteratorType.AT_SEQUENCE_NUMBER,
            IteratorType.AFTER_SEQUENCE_NUMBER,
        )
        if needs_seqnum != (self.sequence_number is not None):
            msg = (
                "sequence_number must be given for AT_ and AFTER_SEQUENCE_NUMBER "
                f"and only for them (got {self.iterator_type})"
            )
            raise ValueError(msg)

    @classmethod
    def from_start(cls) -> AcquisitionMode:
        return cls(IteratorType.TRIM_HORIZON)

    @classmethod
    def from_tail(cls) -> AcquisitionMode:
        return cls(IteratorType.LATEST)

    @classmethod
    def at(cls, sequence_number: str) -> AcquisitionMode:
        return cls(IteratorType.AT_SEQUENCE_NUMBER, SequenceNumber(sequence_number))

    @classmethod
    def after(cls, sequence_number: str) -> AcquisitionMode:
        return cls(IteratorType.AFTER_SEQUENCE_NUMBER, SequenceNumber(sequence_number))

    def request_params(self) -> dict[str, str]:
        """Keyword arguments for ``GetShardIterator``."""
        params = {"ShardIteratorType": self.iterator_type.value}
        if self.sequence_number is not None:
            params["StartingSequenceNumber"] = self.sequence_number
        return params

    def __str__(self) -> str:
        if self.sequence_number is None:
            return self.iterator_type.value
        return f"{self.iterator_type.value}({self.sequence_number})"


@dataclass(frozen=True, slots=True)
class IteratorToken:
    """Volatile read handle for one shard."""

    value: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class Shard:
    """One partition of a stream, as reported by ``DescribeStream``."""

    shard_id: str
    parent_shard_id: str | None = None
    adjacent_parent_shard_id: str | None = None
    starting_sequence_number: str | None = None
    ending_sequence_number: str | None = None

    @property
    def is_closed(self) -> bool:
        return self.ending_sequence_number is not None

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> Shard:
        seqnums = data.get("SequenceNumberRange", {})
        return cls(
            shard_id=data["ShardId"],
            parent_shard_id=data.get("ParentShardId"),
            adjacent_parent_shard_id=data.get("AdjacentParentShardId"),
            starting_sequence_number=seqnums.get("StartingSequenceNumber"),
            ending_sequence_number=seqnums.get("EndingSequenceNumber"),
        )


@dataclass(slots=True)
class Record:
    """A single stream record, tagged with the shard it was read from."""

    shard_id: str
    sequence_number: SequenceNumber
    partition_key: str
    data: bytes
    approximate_arrival: datetime | None = None
    raw: Any = field(default=None, repr=False)

    @classmethod
    def from_response(cls, shard_id: str, data: dict[str, Any]) -> Record:
        return cls(
            shard_id=shard_id,
            sequence_number=SequenceNumber(data["SequenceNumber"]),
            partition_key=data.get("PartitionKey", ""),
            data=data.get("Data", b""),
            approximate_arrival=data.get("ApproximateArrivalTimestamp"),
            raw=data,
        )


@dataclass(slots=True)
class RecordBatch:
    """Result of one ``GetRecords`` call.

    ``next_token`` is ``None`` once the shard has been closed by a reshard and
    every record in it has been returned.
    """

    records: list[dict[str, Any]]
    next_token: IteratorToken | None
    millis_behind_latest: int = 0
