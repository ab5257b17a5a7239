"""
In-Memory Progress Store - Process-local sessions and chests.

Suitable for tests, demos and single-process deployments. Records are
deep-copied on the way in and out, so callers never share mutable state
with the store.
"""

from __future__ import annotations
from copy import deepcopy
from typing import Any
import logging
import threading
import uuid

from ..engine_core.state import UserState, ChestInstance, ChestStatus
from ..errors import ChestNotFoundError, ProgressConflictError
from .base import ProgressStore
from .locks import KeyedLocks

logger = logging.getLogger(__name__)


class InMemoryProgressStore(ProgressStore):
    """
    Sessions keyed by (user_id, quest_id); chests keyed by instance id.

    No persistence - everything is lost with the process.
    """

    def __init__(self):
        self._sessions: dict[tuple[str, str], UserState] = {}
        self._chests: dict[str, ChestInstance] = {}
        self._data_lock = threading.Lock()
        self._key_locks = KeyedLocks()

    # =========================================================================
    # Sessions
    # =========================================================================

    def get_or_create_session(
        self,
        user_id: str,
        quest_id: str,
        start_stage_key: str,
    ) -> UserState:
        key = (user_id, quest_id)
        with self._data_lock:
            state = self._sessions.get(key)
            if state is None:
                state = UserState(
                    user_id=user_id,
                    quest_id=quest_id,
                    current_stage_key=start_stage_key,
                )
                self._sessions[key] = state
                logger.debug("Started session %s/%s at stage %s", user_id, quest_id, start_stage_key)
            return deepcopy(state)

    def save_session(self, state: UserState) -> None:
        key = (state.user_id, state.quest_id)
        with self._data_lock:
            stored = self._sessions.get(key)
            if stored is not None and stored.version != state.version:
                raise ProgressConflictError(state.user_id, state.quest_id)
            state.version += 1
            self._sessions[key] = deepcopy(state)

    def session_guard(self, user_id: str, quest_id: str):
        return self._key_locks.hold(("session", user_id, quest_id))

    # =========================================================================
    # Chests
    # =========================================================================

    def create_chest_instance(
        self,
        state: UserState,
        chest_id: str,
        pool_snapshot: dict[str, Any],
    ) -> str:
        chest_instance_id = uuid.uuid4().hex
        with self._data_lock:
            self._chests[chest_instance_id] = ChestInstance(
                id=chest_instance_id,
                user_id=state.user_id,
                quest_id=state.quest_id,
                chest_id=chest_id,
                pool_snapshot=deepcopy(pool_snapshot),
            )
        return chest_instance_id

    def get_chest_instance(self, chest_instance_id: str) -> ChestInstance | None:
        with self._data_lock:
            chest = self._chests.get(chest_instance_id)
            return deepcopy(chest) if chest else None

    def mark_chest_opened(self, chest_instance_id: str, result_snapshot: dict[str, Any]) -> bool:
        with self._data_lock:
            chest = self._chests.get(chest_instance_id)
            if chest is None:
                raise ChestNotFoundError(chest_instance_id)
            if chest.is_opened:
                return False
            chest.status = ChestStatus.OPENED
            chest.result_snapshot = deepcopy(result_snapshot)
            return True

    def chest_guard(self, chest_instance_id: str):
        return self._key_locks.hold(("chest", chest_instance_id))
