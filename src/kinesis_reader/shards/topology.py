"""Shard discovery and the immutable parent/child index built from it."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

import structlog

from kinesis_reader.shards.facade import RetryingKinesis
from kinesis_reader.shards.models import Shard

logger = structlog.get_logger()


@dataclass(frozen=True)
class ShardGraph:
    """Snapshot of a stream's shards indexed by id and by parent id.

    Roots live under the ``None`` key of ``children_by_parent``. A shard whose
    parent has aged out of the stream's retention period (so is no longer
    reported) is also treated as a root, otherwise it could never be reached
    from a walk that starts at the roots.
    """

    by_id: Mapping[str, Shard]
    children_by_parent: Mapping[str | None, tuple[Shard, ...]]

    @classmethod
    def from_shards(cls, shards: Iterable[Shard]) -> ShardGraph:
        shard_list = list(shards)
        by_id = {shard.shard_id: shard for shard in shard_list}
        children: dict[str | None, list[Shard]] = {}
        for shard in shard_list:
            parent_id = shard.parent_shard_id
            if parent_id is not None and parent_id not in by_id:
                parent_id = None
            children.setdefault(parent_id, []).append(shard)
        return cls(
            by_id=MappingProxyType(by_id),
            children_by_parent=MappingProxyType(
                {key: tuple(value) for key, value in children.items()}
            ),
        )

    def __contains__(self, shard_id: object) -> bool:
        return shard_id in self.by_id

    def __iter__(self) -> Iterator[Shard]:
        return iter(self.by_id.values())

    def __len__(self) -> int:
        return len(self.by_id)

    @property
    def roots(self) -> tuple[Shard, ...]:
        return self.children_by_parent.get(None, ())

    def children_of(self, shard_id: str) -> tuple[Shard, ...]:
        return self.children_by_parent.get(shard_id, ())

    def open_leaves(self) -> list[Shard]:
        """Shards that have no children yet, i.e. the ones taking new writes."""
        return [shard for shard in self if not self.children_of(shard.shard_id)]


class ShardTopology:
    """Keeps the most recent successfully discovered ``ShardGraph``."""

    def __init__(self, kinesis: RetryingKinesis, stream_name: str) -> None:
        self._kinesis = kinesis
        self._stream_name = stream_name
        self._graph: ShardGraph | None = None

    @property
    def graph(self) -> ShardGraph | None:
        """Last good graph; ``None`` until the first successful refresh."""
        return self._graph

    def refresh(self, deadline: float) -> ShardGraph | None:
        """Re-describe the stream.

        Returns ``None`` if the shards could not be listed before *deadline*;
        the previously held graph is kept in that case.
        """
        shards = self._kinesis.describe_shards(self._stream_name, deadline)
        if shards is None:
            logger.warning(
                "shard_topology.refresh_failed", stream=self._stream_name
            )
            return None

        self._graph = ShardGraph.from_shards(shards)
        logger.debug(
            "shard_topology.refreshed",
            stream=self._stream_name,
            shards=len(self._graph),
            roots=[shard.shard_id for shard in self._graph.roots],
        )
        return self._graph
