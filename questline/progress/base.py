"""
Progress Store - Durable session state and chest instances.

The engine does not own persistence. It requires, per key, read-then-write
consistency: two concurrent choices for the same (user, quest), or two
concurrent opens of the same chest, must not both see the unmutated state
and both commit. Stores provide this through two critical sections:

- session_guard(user_id, quest_id)
- chest_guard(chest_instance_id)

Everything between entering a guard and leaving it is serialized against
other holders of the same key. Store failures propagate; there is no retry.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any

from ..engine_core.state import UserState, ChestInstance


class ProgressStore(ABC):
    """Contract consumed by the quest runtime, effect resolver and chest service."""

    # =========================================================================
    # Sessions
    # =========================================================================

    @abstractmethod
    def get_or_create_session(
        self,
        user_id: str,
        quest_id: str,
        start_stage_key: str,
    ) -> UserState:
        """
        Load the session, creating it at start_stage_key with a null scene
        and empty counters on first access.

        Returns a detached copy: mutations are invisible to the store until
        save_session().
        """

    @abstractmethod
    def save_session(self, state: UserState) -> None:
        """
        Persist the whole session at once and bump state.version.

        Raises ProgressConflictError when the stored session has moved past
        the version this state was loaded at.
        """

    @abstractmethod
    def session_guard(self, user_id: str, quest_id: str) -> AbstractContextManager:
        """Critical section for one session's read-then-write."""

    # =========================================================================
    # Chests
    # =========================================================================

    @abstractmethod
    def create_chest_instance(
        self,
        state: UserState,
        chest_id: str,
        pool_snapshot: dict[str, Any],
    ) -> str:
        """Store a new closed chest owned by state's user and quest. Returns its id."""

    @abstractmethod
    def get_chest_instance(self, chest_instance_id: str) -> ChestInstance | None:
        """Load a chest instance, or None if it does not exist."""

    @abstractmethod
    def mark_chest_opened(self, chest_instance_id: str, result_snapshot: dict[str, Any]) -> bool:
        """
        Transition a closed chest to opened with its result.

        Returns False, and leaves the stored result untouched, when the chest
        was already opened. Raises ChestNotFoundError if it does not exist.
        """

    @abstractmethod
    def chest_guard(self, chest_instance_id: str) -> AbstractContextManager:
        """Critical section for one chest's read-then-write."""
