"""
Rewards Export - Best-effort sink for rewards won from chests.

The exporter forwards rewards to whatever system credits them for real
(wallet, bonus engine, analytics). Failures here never fail a chest open:
the caller logs and discards them.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Sequence
import logging

from .views import RewardApplied

logger = logging.getLogger(__name__)


class RewardsExporter(ABC):
    """Destination for rewards drawn from chests."""

    @abstractmethod
    def export(self, user_id: str, rewards: Sequence[RewardApplied]) -> None:
        """Forward rewards for a user. May raise; callers tolerate failure."""


class LoggingRewardsExporter(RewardsExporter):
    """Writes each export to the log. Default when nothing else is wired."""

    def export(self, user_id: str, rewards: Sequence[RewardApplied]) -> None:
        logger.info(
            "Rewards export %s -> %s",
            user_id,
            ", ".join(f"{r.type}:{r.amount}" for r in rewards) or "(none)",
        )
