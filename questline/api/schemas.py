"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the exact contract between the game client and the engine.
Every response model mirrors the to_dict() form of an engine view, so
conversion is a plain model_validate().

Error Codes:
- INVALID_REQUEST: Request could not be resolved against content or stored data
- CONTENT_NOT_FOUND: No quest content for the quest id and locale
- UNKNOWN_SCENE: Scene id is not part of the current stage
- UNKNOWN_CHOICE: Choice id is not offered by the acting scene
- CHEST_NOT_FOUND: Chest instance does not exist
- CHEST_NOT_IN_QUEST: Chest instance belongs to another quest
- INVALID_POOL: Reward pool cannot be drawn from
- NOT_PERMITTED: Request is not allowed in the current state
- VALIDATION_ERROR: Request body failed validation
- INTERNAL_ERROR: Unexpected failure
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class ErrorCode(str, Enum):
    """Structured error codes."""
    INVALID_REQUEST = "INVALID_REQUEST"
    CONTENT_NOT_FOUND = "CONTENT_NOT_FOUND"
    UNKNOWN_SCENE = "UNKNOWN_SCENE"
    UNKNOWN_CHOICE = "UNKNOWN_CHOICE"
    CHEST_NOT_FOUND = "CHEST_NOT_FOUND"
    CHEST_NOT_IN_QUEST = "CHEST_NOT_IN_QUEST"
    INVALID_POOL = "INVALID_POOL"
    NOT_PERMITTED = "NOT_PERMITTED"
    PROGRESS_CONFLICT = "PROGRESS_CONFLICT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Shared Models
# =============================================================================

class SceneInfo(BaseModel):
    """The scene currently shown to the player."""
    id: str
    stage_key: str
    title: str
    description: str
    image: Optional[str] = Field(None, description="Art of the stage's first entry card")


class ChoiceInfo(BaseModel):
    """A selectable choice."""
    id: str
    text: str


class TimerInfo(BaseModel):
    """Countdown placeholder."""
    ends_at: float = Field(..., description="Unix timestamp")
    duration_seconds: int


class ParamsInfo(BaseModel):
    """The three counter maps of a session."""
    tags: dict[str, int] = Field(default_factory=dict)
    stats: dict[str, int] = Field(default_factory=dict)
    inventory: dict[str, int] = Field(default_factory=dict)


class AppliedEffectInfo(BaseModel):
    """Audit entry for an applied effect."""
    type: str = Field(..., description="tag, stat, item, spawn_chest")
    key: Optional[str] = None
    value: Optional[int] = None
    chest_id: Optional[str] = None
    chest_instance_id: Optional[str] = None


class RewardGrantInfo(BaseModel):
    """A fixed reward credited when a stage completes."""
    id: str
    type: str
    value: int
    source: str = "scene"


class ChestRewardInfo(BaseModel):
    """A reward drawn from a chest."""
    type: str
    amount: int
    game_id: Optional[str] = None
    denom: Optional[float] = None


# =============================================================================
# Request Models
# =============================================================================

class ChoiceRequestBody(BaseModel):
    """A player's selection in the current scene."""
    choice_id: str = Field(..., min_length=1, description="Choice to apply")
    current_scene_id: Optional[str] = Field(
        None, description="Scene the client is showing; overrides the stored scene"
    )


# =============================================================================
# Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict] = Field(None, description="Additional error context")
    api_version: str = Field("v1", description="API version")


class StateResponse(BaseModel):
    """Current scene, choices, timer and counters."""
    scene: SceneInfo
    choices: list[ChoiceInfo] = Field(default_factory=list)
    timer: Optional[TimerInfo] = Field(None, description="Absent on stage previews")
    params: ParamsInfo = Field(default_factory=ParamsInfo)
    api_version: str = "v1"


class ChoiceResponse(BaseModel):
    """Everything that changed because of a choice."""
    previous_scene_id: str
    selected_choice_id: str
    params_before: ParamsInfo
    params_after: ParamsInfo
    params_delta: ParamsInfo = Field(..., description="Non-zero changes only")
    effects_applied: list[AppliedEffectInfo] = Field(default_factory=list)
    rewards: list[RewardGrantInfo] = Field(default_factory=list)
    spawned_chest_ids: list[str] = Field(default_factory=list)
    stage_completed: bool = False
    next: StateResponse
    api_version: str = "v1"


class ChestOpenResponse(BaseModel):
    """Result of opening a chest. Identical on every repeat open."""
    chest_instance_id: str
    combination_id: str = Field(..., description="32 hex chars identifying the reward set")
    variant_id: str
    rewards: list[ChestRewardInfo] = Field(default_factory=list)
    api_version: str = "v1"


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
