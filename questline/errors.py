"""
Error Taxonomy - Every failure the quest engine reports is one of these.

Classes:
- INVALID_REQUEST: the caller named something that cannot be resolved
  (missing quest, unknown chest/pool reference, stale scene or choice id,
  malformed stored snapshot). From the caller's side these are bad parameters,
  even when the root cause is a content-authoring defect.
- NOT_PERMITTED: the request is well-formed but not valid given current state
  (chest missing, chest owned by another quest, degenerate reward pool,
  session saved concurrently by another process).

Anything that is not a QuestlineError is internal and must not leak detail
to the caller.
"""

from __future__ import annotations
from enum import Enum


class ErrorKind(Enum):
    """Client-facing class of an error."""
    INVALID_REQUEST = "invalid_request"
    NOT_PERMITTED = "not_permitted"


class QuestlineError(Exception):
    """Base class for all domain errors."""

    kind: ErrorKind = ErrorKind.INVALID_REQUEST

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Invalid request
# =============================================================================

class InvalidRequestError(QuestlineError):
    """Unresolvable id or malformed stored data."""
    kind = ErrorKind.INVALID_REQUEST


class ContentNotFoundError(InvalidRequestError):
    """No content exists for the quest id / locale combination."""

    def __init__(self, quest_id: str, locale: str | None = None):
        self.quest_id = quest_id
        self.locale = locale
        super().__init__(f"Content {quest_id} not found (locale={locale})")


class ContentIntegrityError(InvalidRequestError):
    """Content references something that does not exist, or is malformed."""


class UnknownSceneError(InvalidRequestError):
    """The scene id is not part of the current stage."""

    def __init__(self, scene_id: str, stage_key: str):
        self.scene_id = scene_id
        self.stage_key = stage_key
        super().__init__(f"Unknown scene {scene_id!r} in stage {stage_key!r}")


class UnknownChoiceError(InvalidRequestError):
    """The choice id is not offered by the acting scene."""

    def __init__(self, choice_id: str, scene_id: str):
        self.choice_id = choice_id
        self.scene_id = scene_id
        super().__init__(f"Unknown choice {choice_id!r} in scene {scene_id!r}")


# =============================================================================
# Not permitted
# =============================================================================

class NotPermittedError(QuestlineError):
    """Well-formed request that current state does not allow."""
    kind = ErrorKind.NOT_PERMITTED


class ChestNotFoundError(NotPermittedError):
    """No chest instance with this id."""

    def __init__(self, chest_instance_id: str):
        self.chest_instance_id = chest_instance_id
        super().__init__("Chest not found")


class ChestQuestMismatchError(NotPermittedError):
    """The chest instance was spawned under a different quest."""

    def __init__(self, chest_instance_id: str, quest_id: str):
        self.chest_instance_id = chest_instance_id
        self.quest_id = quest_id
        super().__init__("Chest not in this quest")


class InvalidWeightError(NotPermittedError):
    """A reward pool contains a negative weight."""


class DegeneratePoolError(NotPermittedError):
    """A reward pool is empty or all of its weights are zero."""


class ProgressConflictError(NotPermittedError):
    """Session was saved by another writer after this request loaded it."""

    def __init__(self, user_id: str, quest_id: str):
        self.user_id = user_id
        self.quest_id = quest_id
        super().__init__("Progress changed concurrently, retry the request")
