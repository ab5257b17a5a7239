"""
Session State - Mutable per-user progress and spawned chest instances.

Design principles:
- One UserState per (user, quest); the Progress Store owns it
- Only the effect resolver and stage advancement mutate it
- Snapshots are detached copies, safe to diff and serialize
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..content_schema.effects import CounterNamespace


@dataclass(frozen=True)
class ParamsSnapshot:
    """Detached copy of the three counter maps."""
    tags: dict[str, int] = field(default_factory=dict)
    stats: dict[str, int] = field(default_factory=dict)
    inventory: dict[str, int] = field(default_factory=dict)

    def delta(self, after: ParamsSnapshot) -> ParamsSnapshot:
        """Per-namespace after - before, keeping only non-zero changes."""
        return ParamsSnapshot(
            tags=_diff(self.tags, after.tags),
            stats=_diff(self.stats, after.stats),
            inventory=_diff(self.inventory, after.inventory),
        )

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {
            "tags": dict(self.tags),
            "stats": dict(self.stats),
            "inventory": dict(self.inventory),
        }


def _diff(before: dict[str, int], after: dict[str, int]) -> dict[str, int]:
    result = {}
    for key in sorted(before.keys() | after.keys()):
        change = after.get(key, 0) - before.get(key, 0)
        if change != 0:
            result[key] = change
    return result


@dataclass
class UserState:
    """
    Progress of one user through one quest.

    current_scene_id None means "first scene of the current stage".
    version counts saves; a store refuses to save over a newer version.
    """
    user_id: str
    quest_id: str
    current_stage_key: str
    current_scene_id: str | None = None
    tags: dict[str, int] = field(default_factory=dict)
    stats: dict[str, int] = field(default_factory=dict)
    inventory: dict[str, int] = field(default_factory=dict)
    version: int = 0

    def counters(self, namespace: CounterNamespace) -> dict[str, int]:
        """The live counter map for a namespace."""
        if namespace is CounterNamespace.TAGS:
            return self.tags
        if namespace is CounterNamespace.STATS:
            return self.stats
        return self.inventory

    def add(self, namespace: CounterNamespace, key: str, value: int) -> int:
        """Add value to a counter (absent keys start at 0). Returns the new value."""
        counters = self.counters(namespace)
        counters[key] = counters.get(key, 0) + value
        return counters[key]

    def snapshot(self) -> ParamsSnapshot:
        return ParamsSnapshot(
            tags=dict(self.tags),
            stats=dict(self.stats),
            inventory=dict(self.inventory),
        )


class ChestStatus(Enum):
    CLOSED = "closed"
    OPENED = "opened"


@dataclass
class ChestInstance:
    """
    A spawned, one-time-openable draw.

    pool_snapshot is the merged pool frozen at spawn time, in its
    JSON-equivalent form: {"chest_id": ..., "pool": {...}}. Once opened,
    result_snapshot never changes.
    """
    id: str
    user_id: str
    quest_id: str
    chest_id: str
    pool_snapshot: dict[str, Any]
    status: ChestStatus = ChestStatus.CLOSED
    result_snapshot: dict[str, Any] | None = None

    @property
    def is_opened(self) -> bool:
        return self.status is ChestStatus.OPENED
