"""
Effect Definitions - The closed set of state mutations a choice can trigger.

Effects are:
- Tagged: the "type" field selects exactly one variant
- Ordered: a choice applies its effects in list order
- Immutable: definitions are shared by every session reading the content

Variants:
- tag:         add a signed value to a tag counter
- stat:        add a signed value to a stat counter
- item:        add a signed value to an inventory counter
- spawn_chest: instantiate a chest definition for the acting user
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from ..errors import ContentIntegrityError


class EffectType(Enum):
    """Discriminator values for effect variants."""
    TAG = "tag"
    STAT = "stat"
    ITEM = "item"
    SPAWN_CHEST = "spawn_chest"


class CounterNamespace(Enum):
    """The three counter maps of a user session."""
    TAGS = "tags"
    STATS = "stats"
    INVENTORY = "inventory"


@dataclass(frozen=True)
class TagEffect:
    key: str
    value: int
    op: str = "add"

    effect_type = EffectType.TAG

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tag", "op": self.op, "key": self.key, "value": self.value}


@dataclass(frozen=True)
class StatEffect:
    key: str
    value: int
    op: str = "add"

    effect_type = EffectType.STAT

    def to_dict(self) -> dict[str, Any]:
        return {"type": "stat", "op": self.op, "key": self.key, "value": self.value}


@dataclass(frozen=True)
class ItemEffect:
    id: str
    value: int
    op: str = "add"

    effect_type = EffectType.ITEM

    def to_dict(self) -> dict[str, Any]:
        return {"type": "item", "op": self.op, "id": self.id, "value": self.value}


@dataclass(frozen=True)
class SpawnChestEffect:
    chest_id: str

    effect_type = EffectType.SPAWN_CHEST

    def to_dict(self) -> dict[str, Any]:
        return {"type": "spawn_chest", "chest_id": self.chest_id}


EffectDef = Union[TagEffect, StatEffect, ItemEffect, SpawnChestEffect]


# =============================================================================
# Parsing
# =============================================================================

SUPPORTED_OPS = ("add",)


def _op(data: dict[str, Any]) -> str:
    op = data.get("op", "add")
    if op not in SUPPORTED_OPS:
        raise ContentIntegrityError(f"Unsupported effect op {op!r}; only 'add' is supported")
    return op


def effect_from_dict(data: dict[str, Any]) -> EffectDef:
    """
    Build an effect variant from its JSON-equivalent form.

    Raises ContentIntegrityError for an unknown "type", an "op" other than
    "add", or a missing field.
    """
    try:
        effect_type = EffectType(data.get("type"))
    except ValueError:
        raise ContentIntegrityError(f"Unknown effect type: {data.get('type')!r}")

    try:
        if effect_type is EffectType.TAG:
            return TagEffect(
                key=str(data["key"]),
                value=int(data["value"]),
                op=_op(data),
            )
        if effect_type is EffectType.STAT:
            return StatEffect(
                key=str(data["key"]),
                value=int(data["value"]),
                op=_op(data),
            )
        if effect_type is EffectType.ITEM:
            return ItemEffect(
                id=str(data["id"]),
                value=int(data["value"]),
                op=_op(data),
            )
        return SpawnChestEffect(chest_id=str(data["chest_id"]))
    except (KeyError, TypeError, ValueError) as e:
        raise ContentIntegrityError(
            f"Malformed {effect_type.value} effect: {e}"
        ) from e


# Convenience constructors, mirroring how content authors think about effects

def tag(key: str, value: int) -> TagEffect:
    """Create a tag increment."""
    return TagEffect(key=key, value=value)


def stat(key: str, value: int) -> StatEffect:
    """Create a stat increment."""
    return StatEffect(key=key, value=value)


def item(item_id: str, value: int) -> ItemEffect:
    """Create an inventory increment."""
    return ItemEffect(id=item_id, value=value)


def spawn_chest(chest_id: str) -> SpawnChestEffect:
    """Create a chest spawn."""
    return SpawnChestEffect(chest_id=chest_id)
