"""Decides how to open an iterator on each shard that should be read next.

Saved sequence numbers may belong to shards anywhere in the reshard tree. The
walk below resolves them into a frontier:

- A shard whose descendants all carry saved positions is superseded and is
  never read again.
- A shard with a saved position and no descendant positions resumes
  ``AFTER_SEQUENCE_NUMBER``.
- When only some siblings carry positions, the others start at
  ``TRIM_HORIZON`` so that a reader stopped halfway through a pass does not
  skip them.

If nothing in the tree is resumable the configured start position applies.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from kinesis_reader.shards.models import AcquisitionMode, Shard, StartPosition
from kinesis_reader.shards.topology import ShardGraph


@dataclass(frozen=True)
class TreeWalk:
    """Outcome of walking one set of sibling shards and their descendants."""

    resumable: bool
    assignments: Mapping[str, AcquisitionMode] = field(default_factory=dict)


def walk_shard_tree(
    graph: ShardGraph,
    siblings: Sequence[Shard],
    positions: Mapping[str, str],
) -> TreeWalk:
    """Post-order walk of *siblings*; pure, so it can be tested in isolation."""
    assignments: dict[str, AcquisitionMode] = {}
    resumable: set[str] = set()

    for shard in siblings:
        below = walk_shard_tree(graph, graph.children_of(shard.shard_id), positions)
        if below.resumable:
            assignments.update(below.assignments)
            resumable.add(shard.shard_id)
        elif (seqnum := positions.get(shard.shard_id)) is not None:
            assignments[shard.shard_id] = AcquisitionMode.after(seqnum)
            resumable.add(shard.shard_id)

    if not resumable:
        return TreeWalk(resumable=False)

    if len(resumable) < len(siblings):
        for shard in siblings:
            if shard.shard_id not in resumable:
                assignments[shard.shard_id] = AcquisitionMode.from_start()

    return TreeWalk(resumable=True, assignments=assignments)


def default_assignments(
    graph: ShardGraph, start_position: StartPosition
) -> dict[str, AcquisitionMode]:
    """Frontier used when no saved position applies anywhere in the stream."""
    if start_position == StartPosition.TRIM_HORIZON:
        return {shard.shard_id: AcquisitionMode.from_start() for shard in graph.roots}
    return {shard.shard_id: AcquisitionMode.from_tail() for shard in graph.open_leaves()}


def plan_iterators(
    graph: ShardGraph,
    positions: Mapping[str, str],
    start_position: StartPosition,
) -> dict[str, AcquisitionMode]:
    """Map each frontier shard id to the mode used to open its iterator.

    *positions* should already be pruned to shards present in *graph*.
    """
    walk = walk_shard_tree(graph, graph.roots, positions)
    plan = dict(walk.assignments) if walk.resumable else default_assignments(
        graph, start_position
    )
    return dict(sorted(plan.items()))
