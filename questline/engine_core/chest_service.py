"""
Chest Service - Turns a spawned chest into a concrete, reproducible reward.

Open-once semantics:
- The first successful open draws, stores the result and marks the chest opened
- Every later open returns the stored result verbatim; no new draw happens
- Opens of the same chest serialize on the store's chest guard; if another
  process still wins the race, its stored result is returned instead of ours

The draw is seeded from the chest's own (owner id, quest id, instance id), so
the same chest under the same secret always yields the same variant, whoever
sends the open request. Rewards are exported to the owner.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING
import logging

from ..content_schema import RewardPool
from ..errors import (
    ChestNotFoundError,
    ChestQuestMismatchError,
    ContentIntegrityError,
)
from .lottery import UnitIntervalSource, chest_seed, combination_id, pick_index
from .rewards import RewardsExporter
from .state import ChestInstance
from .views import ChestOpenResult, RewardApplied

if TYPE_CHECKING:
    from ..progress import ProgressStore

logger = logging.getLogger(__name__)


def restore_pool(chest: ChestInstance) -> RewardPool:
    """Rebuild the frozen pool of a chest instance."""
    try:
        return RewardPool.from_dict(chest.pool_snapshot["pool"])
    except (KeyError, TypeError, ValueError, AttributeError, ContentIntegrityError) as e:
        raise ContentIntegrityError(
            f"Malformed pool snapshot for chest {chest.id}"
        ) from e


def restore_result(chest: ChestInstance) -> ChestOpenResult:
    """Rebuild the stored result of an opened chest."""
    try:
        return ChestOpenResult.from_dict(chest.result_snapshot)
    except (KeyError, TypeError, AttributeError) as e:
        raise ContentIntegrityError(
            f"Malformed result snapshot for chest {chest.id}"
        ) from e


@dataclass
class ChestService:
    """
    Usage:
        service = ChestService(store=store, rng=HmacRng(secret), exporter=exporter)
        result = service.open("u1", "odyssey", chest_instance_id)
    """
    store: ProgressStore
    rng: UnitIntervalSource
    exporter: RewardsExporter

    def open(
        self,
        user_id: str,
        quest_id: str,
        chest_instance_id: str,
        idempotency_key: str | None = None,
    ) -> ChestOpenResult:
        """
        Open a chest, or replay its stored result.

        idempotency_key is accepted for request-level dedup by callers; the
        chest's own opened/closed status is what suppresses re-draws.

        Raises:
            ChestNotFoundError: no such chest instance
            ChestQuestMismatchError: chest belongs to another quest
            DegeneratePoolError / InvalidWeightError: frozen pool cannot be drawn
            ContentIntegrityError: stored snapshot is malformed
        """
        with self.store.chest_guard(chest_instance_id):
            chest = self._load(quest_id, chest_instance_id)
            if chest.is_opened:
                logger.info(
                    "Chest %s already opened; replaying stored result (idempotency_key=%s)",
                    chest_instance_id, idempotency_key,
                )
                return restore_result(chest)

            result = self._draw(chest)
            if not self.store.mark_chest_opened(chest_instance_id, result.to_dict()):
                # Lost the race to another writer; theirs is the result
                logger.warning("Chest %s opened concurrently; using stored result", chest_instance_id)
                return restore_result(self._load(quest_id, chest_instance_id))

        logger.info(
            "Opened chest %s of %s (requested by %s): variant=%s combination=%s",
            chest_instance_id, chest.user_id, user_id, result.variant_id, result.combination_id,
        )
        self._export(chest.user_id, result.rewards)
        return result

    def _load(self, quest_id: str, chest_instance_id: str) -> ChestInstance:
        chest = self.store.get_chest_instance(chest_instance_id)
        if chest is None:
            raise ChestNotFoundError(chest_instance_id)
        if chest.quest_id != quest_id:
            raise ChestQuestMismatchError(chest_instance_id, quest_id)
        return chest

    def _draw(self, chest: ChestInstance) -> ChestOpenResult:
        pool = restore_pool(chest)
        u = self.rng.derive_unit_interval(chest_seed(chest.user_id, chest.quest_id, chest.id))
        variant = pool.variants[pick_index(pool.weights, u)]

        return ChestOpenResult(
            chest_instance_id=chest.id,
            combination_id=combination_id(variant.rewards),
            variant_id=variant.id,
            rewards=[
                RewardApplied(type=r.type, amount=r.amount, game_id=r.game_id, denom=r.denom)
                for r in variant.rewards
            ],
        )

    def _export(self, user_id: str, rewards: list[RewardApplied]) -> None:
        try:
            self.exporter.export(user_id, rewards)
        except Exception:
            logger.exception("Rewards export failed for %s; result already stored", user_id)
