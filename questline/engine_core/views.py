"""
Response Views - Explicit value types returned by the engine.

One type per operation:
- StateView:       get_state / get_stage_preview
- ChoiceOutcome:   apply_choice
- ChestOpenResult: chest open
- ApplyResult:     effect resolver batch (internal to apply_choice)

Every view has to_dict() producing plain JSON-compatible data. ChestOpenResult
also round-trips through from_dict(), because it is persisted as the chest's
result snapshot and replayed verbatim.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

from .state import ParamsSnapshot


# =============================================================================
# State view
# =============================================================================

@dataclass(frozen=True)
class SceneView:
    id: str
    stage_key: str
    title: str
    description: str
    image: str | None = None


@dataclass(frozen=True)
class ChoiceView:
    id: str
    text: str


@dataclass(frozen=True)
class TimerView:
    """Placeholder countdown shown with the current scene."""
    ends_at: float
    duration_seconds: int


@dataclass(frozen=True)
class StateView:
    """What the player currently sees."""
    scene: SceneView
    choices: list[ChoiceView] = field(default_factory=list)
    timer: TimerView | None = None
    params: ParamsSnapshot = field(default_factory=ParamsSnapshot)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scene": {
                "id": self.scene.id,
                "stage_key": self.scene.stage_key,
                "title": self.scene.title,
                "description": self.scene.description,
                "image": self.scene.image,
            },
            "choices": [{"id": c.id, "text": c.text} for c in self.choices],
            "timer": (
                {"ends_at": self.timer.ends_at, "duration_seconds": self.timer.duration_seconds}
                if self.timer else None
            ),
            "params": self.params.to_dict(),
        }


# =============================================================================
# Effect application
# =============================================================================

@dataclass(frozen=True)
class AppliedEffect:
    """Audit entry for one applied effect."""
    type: str
    key: str | None = None
    value: int | None = None
    chest_id: str | None = None
    chest_instance_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.chest_id is not None:
            data["chest_id"] = self.chest_id
            data["chest_instance_id"] = self.chest_instance_id
        else:
            data["key"] = self.key
            data["value"] = self.value
        return data


@dataclass(frozen=True)
class RewardApplied:
    """A reward handed to the rewards exporter."""
    type: str
    amount: int
    game_id: str | None = None
    denom: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "amount": self.amount,
            "game_id": self.game_id,
            "denom": self.denom,
        }


@dataclass(frozen=True)
class ApplyResult:
    effects_applied: list[AppliedEffect] = field(default_factory=list)
    rewards: list[RewardApplied] = field(default_factory=list)
    spawned_chest_ids: list[str] = field(default_factory=list)


# =============================================================================
# Choice outcome
# =============================================================================

@dataclass(frozen=True)
class RewardGrant:
    """A fixed on-complete reward credited to the inventory."""
    id: str
    type: str
    value: int
    source: str = "scene"

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type, "value": self.value, "source": self.source}


@dataclass(frozen=True)
class ChoiceOutcome:
    previous_scene_id: str
    selected_choice_id: str
    params_before: ParamsSnapshot
    params_after: ParamsSnapshot
    params_delta: ParamsSnapshot
    effects_applied: list[AppliedEffect]
    rewards: list[RewardGrant]
    spawned_chest_ids: list[str]
    stage_completed: bool
    next: StateView

    def to_dict(self) -> dict[str, Any]:
        return {
            "previous_scene_id": self.previous_scene_id,
            "selected_choice_id": self.selected_choice_id,
            "params_before": self.params_before.to_dict(),
            "params_after": self.params_after.to_dict(),
            "params_delta": self.params_delta.to_dict(),
            "effects_applied": [e.to_dict() for e in self.effects_applied],
            "rewards": [r.to_dict() for r in self.rewards],
            "spawned_chest_ids": list(self.spawned_chest_ids),
            "stage_completed": self.stage_completed,
            "next": self.next.to_dict(),
        }


# =============================================================================
# Chest result
# =============================================================================

@dataclass(frozen=True)
class ChestOpenResult:
    chest_instance_id: str
    combination_id: str
    variant_id: str
    rewards: list[RewardApplied] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chest_instance_id": self.chest_instance_id,
            "combination_id": self.combination_id,
            "variant_id": self.variant_id,
            "rewards": [r.to_dict() for r in self.rewards],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChestOpenResult:
        return cls(
            chest_instance_id=data["chest_instance_id"],
            combination_id=data["combination_id"],
            variant_id=data["variant_id"],
            rewards=[
                RewardApplied(
                    type=r["type"],
                    amount=r["amount"],
                    game_id=r.get("game_id"),
                    denom=r.get("denom"),
                )
                for r in data.get("rewards", [])
            ],
        )
