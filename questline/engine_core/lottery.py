"""
Weighted Lottery - Deterministic, auditable reward draws.

Three pure building blocks:
1. HmacRng.derive_unit_interval: seed bytes -> reproducible value in [0, 1)
2. pick_index: weights + unit value -> variant index (inverse-CDF walk)
3. combination_id: reward bundle -> order-independent identity hash

Determinism guarantees:
- The same seed bytes and secret always give the same draw, so a past
  outcome can be re-derived without storing the raw draw
- Boundary values fall into the LOWER bucket: index i is chosen when
  cumulative[i-1] <= u * total < cumulative[i]
"""

from __future__ import annotations
from bisect import bisect_left, bisect_right
from itertools import accumulate
from typing import Iterable, Protocol, Sequence
import hashlib
import hmac

from ..errors import DegeneratePoolError, InvalidWeightError

SEED_SEPARATOR = "|"

_UNIT_SCALE = 1.0 / (1 << 53)


# =============================================================================
# Index selection
# =============================================================================

def cumulative_weights(weights: Sequence[int]) -> list[int]:
    """
    Build the cumulative weight table.

    Raises InvalidWeightError on a negative weight and DegeneratePoolError
    when the list is empty or sums to zero.
    """
    for i, w in enumerate(weights):
        if w < 0:
            raise InvalidWeightError(f"Negative weight {w} at index {i}")
    cumulative = list(accumulate(weights))
    if not cumulative or cumulative[-1] <= 0:
        raise DegeneratePoolError("All weights are zero")
    return cumulative


def pick_index(weights: Sequence[int], u: float) -> int:
    """
    Select an index with probability proportional to its weight.

    Args:
        weights: Non-negative integer weights, at least one positive
        u: Unit value in [0, 1)

    Returns:
        The first index whose running sum is strictly greater than u * total.
    """
    if not 0.0 <= u < 1.0:
        raise ValueError(f"u must be in [0, 1), got {u}")

    cumulative = cumulative_weights(weights)
    total = cumulative[-1]
    target = u * total

    index = bisect_right(cumulative, target)
    if index >= len(cumulative):
        # Float rounding pushed target onto the total; take the last
        # index that actually reaches it (never a trailing zero weight).
        index = bisect_left(cumulative, total)
    return index


# =============================================================================
# Seed -> unit interval
# =============================================================================

class UnitIntervalSource(Protocol):
    """Anything that turns seed bytes into a reproducible draw in [0, 1)."""

    def derive_unit_interval(self, seed: bytes) -> float: ...


class HmacRng:
    """
    HMAC-SHA256 keyed draw source.

    The secret is captured once at construction. Rotating it (building a new
    HmacRng) changes future draws only; results already stored are returned
    verbatim and never re-derived.

    Usage:
        rng = HmacRng(config.rng_secret)
        u = rng.derive_unit_interval(chest_seed(user_id, quest_id, chest_id))
    """

    def __init__(self, secret: str | bytes):
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        self._secret = secret

    def derive_unit_interval(self, seed: bytes) -> float:
        """
        Map seed bytes to [0, 1).

        The first 8 digest bytes are read as an unsigned 64-bit integer
        (little-endian); the top 53 bits are scaled by 2**-53.
        """
        digest = hmac.new(self._secret, seed, hashlib.sha256).digest()
        x = int.from_bytes(digest[:8], "little")
        return (x >> 11) * _UNIT_SCALE


def chest_seed(user_id: str, quest_id: str, chest_instance_id: str) -> bytes:
    """Stable seed for a chest draw."""
    return SEED_SEPARATOR.join((user_id, quest_id, chest_instance_id)).encode("utf-8")


# =============================================================================
# Reward bundle identity
# =============================================================================

class RewardLike(Protocol):
    type: str
    amount: int
    game_id: str | None
    denom: float | None


def format_denom(denom: float | None) -> str:
    """Up to 8 decimals, trailing zeros removed; empty for None."""
    if denom is None:
        return ""
    text = f"{denom:.8f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def canonical_reward(reward: RewardLike) -> str:
    return SEED_SEPARATOR.join((
        reward.type,
        reward.game_id or "",
        format_denom(reward.denom),
        str(reward.amount),
    ))


def combination_id(rewards: Iterable[RewardLike]) -> str:
    """
    Order-independent identity of a reward bundle.

    Returns the first 16 bytes of SHA-256 over the sorted canonical
    strings joined with ';', as 32 lower-case hex characters.
    """
    canonical = ";".join(sorted(canonical_reward(r) for r in rewards))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]
