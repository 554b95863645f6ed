"""Live shard iterators for the shards currently being read."""

from __future__ import annotations

import structlog

from kinesis_reader.shards.cursors import CursorStore
from kinesis_reader.shards.facade import RetryingKinesis
from kinesis_reader.shards.models import AcquisitionMode, IteratorToken, StartPosition
from kinesis_reader.shards.planner import plan_iterators
from kinesis_reader.shards.topology import ShardTopology

logger = structlog.get_logger()


class IteratorPool:
    """Tracks the frontier (shards being read) and one iterator token per shard.

    Each frontier shard is registered with the mode it was planned with.
    Tokens are acquired lazily and replaced as ``GetRecords`` hands back the
    next iterator. A shard that has been read from is always re-opened after
    its saved sequence number, whatever mode it was registered with.
    """

    def __init__(
        self,
        kinesis: RetryingKinesis,
        topology: ShardTopology,
        cursors: CursorStore,
        stream_name: str,
        *,
        start_position: StartPosition = StartPosition.LATEST,
        timeout: float = 2.5,
    ) -> None:
        self._kinesis = kinesis
        self._topology = topology
        self._cursors = cursors
        self._stream_name = stream_name
        self.start_position = start_position
        self.timeout = timeout
        self._modes: dict[str, AcquisitionMode] = {}
        self._tokens: dict[str, IteratorToken] = {}
        # closed shards whose children could not be discovered yet
        self._pending_parents: set[str] = set()
        self._planned = False

    @property
    def frontier(self) -> list[str]:
        return sorted(self._modes)

    @property
    def pending_parents(self) -> list[str]:
        return sorted(self._pending_parents)

    def token(self, shard_id: str) -> IteratorToken | None:
        return self._tokens.get(shard_id)

    def mode_for(self, shard_id: str) -> AcquisitionMode | None:
        if shard_id not in self._modes:
            return None
        return self._cursors.resume_mode(shard_id) or self._modes[shard_id]

    def prepare(self) -> list[str]:
        """Get the pool ready for a pass and return the shards it can read.

        All discovery and acquisition done here shares one deadline.
        """
        deadline = self._kinesis.deadline(self.timeout)
        if not self._planned:
            self.reload(deadline)
        else:
            for parent_id in sorted(self._pending_parents):
                self.replace_with_children(parent_id, deadline)
            missing = [s for s in self.frontier if s not in self._tokens]
            failed = [s for s in missing if self.ensure(s, deadline) is None]
            if failed:
                logger.warning(
                    "iterator_pool.iterators_unavailable",
                    stream=self._stream_name,
                    shards=failed,
                )
        return [s for s in self.frontier if s in self._tokens]

    def reload(self, deadline: float) -> bool:
        """Rediscover shards, re-plan the frontier and acquire fresh tokens.

        Used on first read and whenever an iterator expires. If the stream
        cannot be described in time the last known graph is planned against
        instead; without one the pool is left empty and the next pass retries.
        """
        self._modes.clear()
        self._tokens.clear()
        self._pending_parents.clear()
        self._planned = False

        graph = self._topology.refresh(deadline)
        if graph is not None:
            self._cursors.prune(graph.by_id.keys())
        else:
            graph = self._topology.graph
            if graph is None:
                logger.warning(
                    "iterator_pool.reload_failed", stream=self._stream_name
                )
                return False

        positions = self._cursors.snapshot()
        self._modes.update(plan_iterators(graph, positions, self.start_position))
        logger.debug(
            "iterator_pool.planned",
            stream=self._stream_name,
            sequence_numbers=positions,
            modes={shard_id: str(mode) for shard_id, mode in self._modes.items()},
        )

        failed = [s for s in self.frontier if self.ensure(s, deadline) is None]
        if failed:
            logger.warning(
                "iterator_pool.iterators_unavailable",
                stream=self._stream_name,
                shards=failed,
            )
        self._planned = bool(self._modes)
        return not failed

    def ensure(self, shard_id: str, deadline: float) -> IteratorToken | None:
        """Return the shard's live token, acquiring one if needed."""
        token = self._tokens.get(shard_id)
        if token is not None:
            return token
        mode = self.mode_for(shard_id)
        if mode is None:
            return None
        token = self._kinesis.get_shard_iterator(
            self._stream_name, shard_id, mode, deadline
        )
        if token is not None:
            self._tokens[shard_id] = token
        return token

    def update(self, shard_id: str, token: IteratorToken) -> None:
        if shard_id in self._modes:
            self._tokens[shard_id] = token

    def invalidate(self, shard_id: str) -> None:
        self._tokens.pop(shard_id, None)

    def rewind(self, shard_id: str, mode: AcquisitionMode) -> None:
        """Drop the shard's token and re-register it at *mode*.

        A saved sequence number for the shard still takes precedence.
        """
        if shard_id not in self._modes:
            return
        self._modes[shard_id] = mode
        self._tokens.pop(shard_id, None)

    def replace_with_children(self, shard_id: str, deadline: float) -> bool:
        """Swap a fully read, closed shard for its children.

        Children are registered at ``TRIM_HORIZON``; their tokens are acquired
        on the next :meth:`prepare`. If the children cannot be discovered yet,
        the shard is parked and retried on the next pass.
        """
        self._modes.pop(shard_id, None)
        self._tokens.pop(shard_id, None)

        graph = self._topology.graph
        if graph is None or not graph.children_of(shard_id):
            graph = self._topology.refresh(deadline)
        if graph is None:
            self._pending_parents.add(shard_id)
            logger.warning(
                "iterator_pool.children_unavailable",
                stream=self._stream_name,
                shard=shard_id,
            )
            return False

        self._pending_parents.discard(shard_id)
        children = graph.children_of(shard_id)
        if not children:
            merged = [s.shard_id for s in graph if s.adjacent_parent_shard_id == shard_id]
            if merged:
                logger.debug(
                    "iterator_pool.merged_shard_closed",
                    stream=self._stream_name,
                    shard=shard_id,
                    merged_into=merged,
                )
            else:
                logger.warning(
                    "iterator_pool.no_children",
                    stream=self._stream_name,
                    shard=shard_id,
                )
            return False

        for child in children:
            self._modes.setdefault(child.shard_id, AcquisitionMode.from_start())
        logger.debug(
            "iterator_pool.replaced_with_children",
            stream=self._stream_name,
            shard=shard_id,
            children=[child.shard_id for child in children],
        )
        return True
