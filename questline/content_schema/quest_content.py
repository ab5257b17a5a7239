"""
Quest Content - Immutable definitions of a quest.

A quest is authored as JSON-equivalent structured data:
- An ordered list of stages (order matters: gating walks them in sequence)
- Reward pools keyed by pool id
- Chest definitions keyed by chest id

Design principles:
- Frozen: content is shared by every session and must never be mutated
- Tuples, not lists: nested collections are immutable too
- Round-trippable: to_dict() gives back the JSON-equivalent form, which is
  also what chest snapshots are frozen into
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any

from ..errors import ContentIntegrityError
from .effects import EffectDef, effect_from_dict


def _require(data: dict[str, Any], key: str, where: str) -> Any:
    try:
        return data[key]
    except (KeyError, TypeError):
        raise ContentIntegrityError(f"{where}: missing required field '{key}'")


# =============================================================================
# Rewards
# =============================================================================

@dataclass(frozen=True)
class UiMeta:
    """Display hints attached to a reward."""
    title: str = ""
    desc: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> UiMeta | None:
        if data is None:
            return None
        return cls(title=data.get("title", ""), desc=data.get("desc", ""))

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "desc": self.desc}


@dataclass(frozen=True)
class RewardDef:
    """
    A reward inside a pool variant.

    game_id and denom are only meaningful for game-scoped rewards
    (e.g. free spins with a stake denomination).
    """
    type: str
    amount: int
    denom: float | None = None
    game_id: str | None = None
    ui: UiMeta | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RewardDef:
        denom = data.get("denom")
        return cls(
            type=str(_require(data, "type", "reward")),
            amount=int(_require(data, "amount", "reward")),
            denom=float(denom) if denom is not None else None,
            game_id=data.get("game_id"),
            ui=UiMeta.from_dict(data.get("ui")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "amount": self.amount,
            "denom": self.denom,
            "game_id": self.game_id,
            "ui": self.ui.to_dict() if self.ui else None,
        }


@dataclass(frozen=True)
class RewardFixed:
    """A fixed reward credited into the inventory when a stage completes."""
    type: str
    id: str
    amount: int
    ui: UiMeta | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RewardFixed:
        return cls(
            type=str(data.get("type", "item")),
            id=str(_require(data, "id", "fixed reward")),
            amount=int(_require(data, "amount", "fixed reward")),
            ui=UiMeta.from_dict(data.get("ui")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "id": self.id,
            "amount": self.amount,
            "ui": self.ui.to_dict() if self.ui else None,
        }


@dataclass(frozen=True)
class PoolVariant:
    """One weighted bundle of rewards."""
    id: str
    weight: int
    rewards: tuple[RewardDef, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PoolVariant:
        return cls(
            id=str(_require(data, "id", "pool variant")),
            weight=int(_require(data, "weight", "pool variant")),
            rewards=tuple(RewardDef.from_dict(r) for r in data.get("rewards", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "weight": self.weight,
            "rewards": [r.to_dict() for r in self.rewards],
        }


@dataclass(frozen=True)
class RewardPool:
    """A weighted set of reward bundles."""
    title: str
    variants: tuple[PoolVariant, ...] = ()

    @property
    def weights(self) -> list[int]:
        return [v.weight for v in self.variants]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RewardPool:
        return cls(
            title=str(data.get("title", "")),
            variants=tuple(PoolVariant.from_dict(v) for v in data.get("variants", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "variants": [v.to_dict() for v in self.variants],
        }

    def with_overrides(self, overrides: ChestOverrides | None) -> RewardPool:
        """
        Return a new pool with override weights applied.

        Only variants whose id matches an override change weight; unknown
        override ids are ignored; variant order is preserved. self is never
        modified.
        """
        if overrides is None or not overrides.variants:
            return self
        new_weights = {ov.id: ov.weight for ov in overrides.variants}
        variants = tuple(
            replace(v, weight=new_weights[v.id]) if v.id in new_weights else v
            for v in self.variants
        )
        return replace(self, variants=variants)


# =============================================================================
# Chests
# =============================================================================

@dataclass(frozen=True)
class VariantOverride:
    id: str
    weight: int


@dataclass(frozen=True)
class ChestOverrides:
    """Partial list of variant-id -> weight replacements."""
    variants: tuple[VariantOverride, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ChestOverrides | None:
        if data is None:
            return None
        return cls(variants=tuple(
            VariantOverride(id=str(v["id"]), weight=int(v["weight"]))
            for v in data.get("variants", [])
        ))

    def to_dict(self) -> dict[str, Any]:
        return {"variants": [{"id": v.id, "weight": v.weight} for v in self.variants]}


@dataclass(frozen=True)
class ChestDef:
    """A chest: a base pool plus optional weight overrides."""
    use_pool: str
    title: str = ""
    desc: str = ""
    art: str = ""
    overrides: ChestOverrides | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChestDef:
        return cls(
            use_pool=str(_require(data, "use_pool", "chest")),
            title=data.get("title", ""),
            desc=data.get("desc", ""),
            art=data.get("art", ""),
            overrides=ChestOverrides.from_dict(data.get("overrides")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "desc": self.desc,
            "art": self.art,
            "use_pool": self.use_pool,
            "overrides": self.overrides.to_dict() if self.overrides else None,
        }


# =============================================================================
# Narrative structure
# =============================================================================

@dataclass(frozen=True)
class ChoiceDef:
    """
    A selectable option within a scene.

    next is None when selecting the choice completes the current stage.
    """
    id: str
    label: str = ""
    effects: tuple[EffectDef, ...] = ()
    next: str | None = None

    @property
    def completes_stage(self) -> bool:
        return not self.next

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChoiceDef:
        return cls(
            id=str(_require(data, "id", "choice")),
            label=data.get("label", ""),
            effects=tuple(effect_from_dict(e) for e in data.get("effects", [])),
            next=data.get("next") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "effects": [e.to_dict() for e in self.effects],
            "next": self.next,
        }


@dataclass(frozen=True)
class SceneDef:
    """A narrative node. A scene without choices is a dead end."""
    id: str
    text: str = ""
    choices: tuple[ChoiceDef, ...] = ()
    rewards_on_complete: tuple[RewardFixed, ...] = ()

    def get_choice(self, choice_id: str) -> ChoiceDef | None:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SceneDef:
        return cls(
            id=str(_require(data, "id", "scene")),
            text=data.get("text", ""),
            choices=tuple(ChoiceDef.from_dict(c) for c in data.get("choices", [])),
            rewards_on_complete=tuple(
                RewardFixed.from_dict(r) for r in data.get("rewards_on_complete") or []
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "choices": [c.to_dict() for c in self.choices],
            "rewards_on_complete": [r.to_dict() for r in self.rewards_on_complete],
        }


@dataclass(frozen=True)
class StageCondition:
    """Satisfied when parameters[param] (default 0) >= min."""
    param: str
    min: int

    def is_satisfied(self, parameters: dict[str, int]) -> bool:
        return parameters.get(self.param, 0) >= self.min


@dataclass(frozen=True)
class EntryCard:
    id: str
    art: str = ""
    cta: str = ""


@dataclass(frozen=True)
class StageDef:
    """A gated chapter of the quest."""
    key: str
    title: str = ""
    conditions: tuple[StageCondition, ...] = ()
    entry_cards: tuple[EntryCard, ...] = ()
    scenes: tuple[SceneDef, ...] = ()
    next_stage_key: str | None = None

    @property
    def first_scene(self) -> SceneDef:
        if not self.scenes:
            raise ContentIntegrityError(f"Stage {self.key!r} has no scenes")
        return self.scenes[0]

    @property
    def image(self) -> str | None:
        return self.entry_cards[0].art if self.entry_cards else None

    def get_scene(self, scene_id: str | None) -> SceneDef | None:
        if scene_id is None:
            return None
        for scene in self.scenes:
            if scene.id == scene_id:
                return scene
        return None

    def conditions_met(self, parameters: dict[str, int]) -> bool:
        return all(c.is_satisfied(parameters) for c in self.conditions)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StageDef:
        connect = data.get("connect") or {}
        return cls(
            key=str(_require(data, "key", "stage")),
            title=data.get("title", ""),
            conditions=tuple(
                StageCondition(param=str(c["param"]), min=int(c["min"]))
                for c in data.get("conditions") or []
            ),
            entry_cards=tuple(
                EntryCard(id=str(c.get("id", "")), art=c.get("art", ""), cta=c.get("cta", ""))
                for c in data.get("entry_cards") or []
            ),
            scenes=tuple(SceneDef.from_dict(s) for s in data.get("scenes", [])),
            next_stage_key=connect.get("next_stage_key") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "title": self.title,
            "conditions": [{"param": c.param, "min": c.min} for c in self.conditions],
            "entry_cards": [
                {"id": c.id, "art": c.art, "cta": c.cta} for c in self.entry_cards
            ],
            "scenes": [s.to_dict() for s in self.scenes],
            "connect": {"next_stage_key": self.next_stage_key},
        }


@dataclass(frozen=True)
class QuestContent:
    """
    A complete quest definition for one locale.

    Usage:
        content = QuestContent.from_dict(json.loads(raw))
        stage = content.get_stage(state.current_stage_key)
    """
    quest_id: str
    stages: tuple[StageDef, ...] = ()
    reward_pools: dict[str, RewardPool] = field(default_factory=dict)
    chests: dict[str, ChestDef] = field(default_factory=dict)
    version: str = "1"
    locale: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def first_stage(self) -> StageDef:
        if not self.stages:
            raise ContentIntegrityError(f"Quest {self.quest_id!r} has no stages")
        return self.stages[0]

    def get_stage(self, key: str) -> StageDef | None:
        for stage in self.stages:
            if stage.key == key:
                return stage
        return None

    def get_pool(self, pool_id: str) -> RewardPool | None:
        return self.reward_pools.get(pool_id)

    def get_chest(self, chest_id: str) -> ChestDef | None:
        return self.chests.get(chest_id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestContent:
        """
        Parse content from its JSON-equivalent form.

        Raises ContentIntegrityError if a required field is missing or a
        value has the wrong shape.
        """
        try:
            return cls(
                quest_id=str(_require(data, "quest_id", "quest")),
                version=str(data.get("version", "1")),
                locale=data.get("locale"),
                meta=dict(data.get("meta") or {}),
                reward_pools={
                    pool_id: RewardPool.from_dict(pool)
                    for pool_id, pool in (data.get("reward_pools") or {}).items()
                },
                chests={
                    chest_id: ChestDef.from_dict(chest)
                    for chest_id, chest in (data.get("chests") or {}).items()
                },
                stages=tuple(StageDef.from_dict(s) for s in data.get("stages", [])),
            )
        except ContentIntegrityError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ContentIntegrityError(f"Malformed quest content: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return {
            "quest_id": self.quest_id,
            "version": self.version,
            "locale": self.locale,
            "meta": dict(self.meta),
            "reward_pools": {k: v.to_dict() for k, v in self.reward_pools.items()},
            "chests": {k: v.to_dict() for k, v in self.chests.items()},
            "stages": [s.to_dict() for s in self.stages],
        }
