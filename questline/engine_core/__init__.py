"""
Engine Core - Deterministic quest progression and chest rewards.

The engine is the runtime that:
1. Reads quest content through a ContentRepository
2. Loads and saves UserState through a ProgressStore
3. Applies choice effects via the EffectResolver
4. Advances scenes and stages via the QuestRuntime
5. Opens chests exactly once via the ChestService and the weighted lottery
"""

from .state import UserState, ParamsSnapshot, ChestInstance, ChestStatus
from .lottery import (
    HmacRng,
    UnitIntervalSource,
    pick_index,
    cumulative_weights,
    chest_seed,
    combination_id,
)
from .views import (
    StateView,
    SceneView,
    ChoiceView,
    TimerView,
    ChoiceOutcome,
    AppliedEffect,
    ApplyResult,
    RewardGrant,
    RewardApplied,
    ChestOpenResult,
)
from .rewards import RewardsExporter, LoggingRewardsExporter
from .effect_resolver import EffectResolver, freeze_pool_snapshot
from .quest_runtime import QuestRuntime, ChoiceRequest, DEFAULT_TIMER_SECONDS
from .chest_service import ChestService

__all__ = [
    "UserState",
    "ParamsSnapshot",
    "ChestInstance",
    "ChestStatus",
    "HmacRng",
    "UnitIntervalSource",
    "pick_index",
    "cumulative_weights",
    "chest_seed",
    "combination_id",
    "StateView",
    "SceneView",
    "ChoiceView",
    "TimerView",
    "ChoiceOutcome",
    "AppliedEffect",
    "ApplyResult",
    "RewardGrant",
    "RewardApplied",
    "ChestOpenResult",
    "RewardsExporter",
    "LoggingRewardsExporter",
    "EffectResolver",
    "freeze_pool_snapshot",
    "QuestRuntime",
    "ChoiceRequest",
    "DEFAULT_TIMER_SECONDS",
    "ChestService",
]
