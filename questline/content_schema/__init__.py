"""Quest content schema - immutable quest definitions and the effect sum type."""

from .quest_content import (
    QuestContent,
    StageDef,
    StageCondition,
    EntryCard,
    SceneDef,
    ChoiceDef,
    RewardPool,
    PoolVariant,
    RewardDef,
    RewardFixed,
    UiMeta,
    ChestDef,
    ChestOverrides,
    VariantOverride,
)
from .effects import (
    EffectDef,
    EffectType,
    CounterNamespace,
    TagEffect,
    StatEffect,
    ItemEffect,
    SpawnChestEffect,
    effect_from_dict,
)

__all__ = [
    "QuestContent",
    "StageDef",
    "StageCondition",
    "EntryCard",
    "SceneDef",
    "ChoiceDef",
    "RewardPool",
    "PoolVariant",
    "RewardDef",
    "RewardFixed",
    "UiMeta",
    "ChestDef",
    "ChestOverrides",
    "VariantOverride",
    "EffectDef",
    "EffectType",
    "CounterNamespace",
    "TagEffect",
    "StatEffect",
    "ItemEffect",
    "SpawnChestEffect",
    "effect_from_dict",
]
