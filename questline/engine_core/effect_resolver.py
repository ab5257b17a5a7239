"""
Effect Resolver - Applies a batch of effects to a user session.

The resolver works in two phases:

prepare()
1. Resolves every spawn_chest effect to its chest and pool, freezing the
   merged pool snapshot. Unknown chests or pools are content-integrity
   errors raised before anything is mutated.
2. Dispatches counter effects by variant, in list order, against the
   in-memory UserState (later effects see earlier mutations).

commit()
3. Saves the whole state exactly once.
4. Creates the spawned chest instances, only after the save succeeded.

apply() runs both phases. The quest runtime calls them separately so it can
advance the stage between them and still save once.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, TYPE_CHECKING
import logging

from ..content_schema import (
    QuestContent,
    EffectDef,
    CounterNamespace,
    TagEffect,
    StatEffect,
    ItemEffect,
    SpawnChestEffect,
    RewardPool,
)
from ..errors import ContentIntegrityError
from .state import UserState
from .views import AppliedEffect, ApplyResult

if TYPE_CHECKING:
    from ..progress import ProgressStore

logger = logging.getLogger(__name__)


def freeze_pool_snapshot(chest_id: str, pool: RewardPool) -> dict[str, Any]:
    """JSON-equivalent snapshot stored with a chest instance."""
    return {"chest_id": chest_id, "pool": pool.to_dict()}


@dataclass(frozen=True)
class PendingSpawn:
    """A validated chest spawn waiting for its instance id."""
    position: int
    chest_id: str
    pool_snapshot: dict[str, Any]


@dataclass
class EffectBatch:
    """Effects applied in memory but not yet saved."""
    applied: list[AppliedEffect] = field(default_factory=list)
    spawns: list[PendingSpawn] = field(default_factory=list)


@dataclass
class EffectResolver:
    """
    Usage:
        resolver = EffectResolver(store=store)
        result = resolver.apply(content, state, choice.effects)

    Or, with more mutations before the single save:
        batch = resolver.prepare(content, state, choice.effects)
        state.current_scene_id = choice.next
        result = resolver.commit(state, batch)
    """
    store: ProgressStore

    def apply(
        self,
        content: QuestContent,
        state: UserState,
        effects: Iterable[EffectDef],
    ) -> ApplyResult:
        """Apply effects to state, save it and create spawned chests."""
        return self.commit(state, self.prepare(content, state, effects))

    def prepare(
        self,
        content: QuestContent,
        state: UserState,
        effects: Iterable[EffectDef],
    ) -> EffectBatch:
        """
        Validate the batch, then mutate state in memory.

        Nothing reaches the store. If any spawn references a missing chest
        or pool, ContentIntegrityError is raised and state is untouched.
        """
        effects = list(effects)
        batch = EffectBatch()
        snapshots = {
            position: self._freeze_chest(content, effect.chest_id)
            for position, effect in enumerate(effects)
            if isinstance(effect, SpawnChestEffect)
        }

        for position, effect in enumerate(effects):
            if isinstance(effect, TagEffect):
                state.add(CounterNamespace.TAGS, effect.key, effect.value)
                batch.applied.append(AppliedEffect(type="tag", key=effect.key, value=effect.value))
            elif isinstance(effect, StatEffect):
                state.add(CounterNamespace.STATS, effect.key, effect.value)
                batch.applied.append(AppliedEffect(type="stat", key=effect.key, value=effect.value))
            elif isinstance(effect, ItemEffect):
                state.add(CounterNamespace.INVENTORY, effect.id, effect.value)
                batch.applied.append(AppliedEffect(type="item", key=effect.id, value=effect.value))
            elif isinstance(effect, SpawnChestEffect):
                batch.spawns.append(PendingSpawn(
                    position=len(batch.applied),
                    chest_id=effect.chest_id,
                    pool_snapshot=snapshots[position],
                ))
                batch.applied.append(AppliedEffect(type="spawn_chest", chest_id=effect.chest_id))
            else:
                raise ContentIntegrityError(f"Unsupported effect: {effect!r}")

        return batch

    def commit(self, state: UserState, batch: EffectBatch) -> ApplyResult:
        """Save state once, then create the batch's chest instances."""
        self.store.save_session(state)

        applied = list(batch.applied)
        spawned: list[str] = []
        for spawn in batch.spawns:
            chest_instance_id = self.store.create_chest_instance(
                state, spawn.chest_id, spawn.pool_snapshot
            )
            applied[spawn.position] = replace(
                applied[spawn.position], chest_instance_id=chest_instance_id
            )
            spawned.append(chest_instance_id)
            logger.info(
                "Spawned chest %s (%s) for %s in %s",
                chest_instance_id, spawn.chest_id, state.user_id, state.quest_id,
            )

        return ApplyResult(
            effects_applied=applied,
            rewards=[],
            spawned_chest_ids=spawned,
        )

    def _freeze_chest(self, content: QuestContent, chest_id: str) -> dict[str, Any]:
        chest = content.get_chest(chest_id)
        if chest is None:
            raise ContentIntegrityError(f"Unknown chest {chest_id!r}")
        base_pool = content.get_pool(chest.use_pool)
        if base_pool is None:
            raise ContentIntegrityError(
                f"Unknown pool {chest.use_pool!r} for chest {chest_id!r}"
            )
        return freeze_pool_snapshot(chest_id, base_pool.with_overrides(chest.overrides))
