"""
API Module - Game client interface.

Exposes the quest engine via REST API. The client:
1. Fetches the current scene of a quest
2. Applies choices and receives the resulting changes
3. Opens the chests those choices spawned

Sessions are keyed by the X-User-Id header. No accounts or auth here.
"""

from .schemas import (
    # Requests
    ChoiceRequestBody,
    # Responses
    StateResponse,
    ChoiceResponse,
    ChestOpenResponse,
    ErrorResponse,
    HealthResponse,
    # Shared
    ErrorCode,
    SceneInfo,
    ChoiceInfo,
    TimerInfo,
    ParamsInfo,
    AppliedEffectInfo,
    RewardGrantInfo,
    ChestRewardInfo,
)
from .service import APIService, error_response
from .app import create_app

__all__ = [
    # Requests
    "ChoiceRequestBody",
    # Responses
    "StateResponse",
    "ChoiceResponse",
    "ChestOpenResponse",
    "ErrorResponse",
    "HealthResponse",
    # Shared
    "ErrorCode",
    "SceneInfo",
    "ChoiceInfo",
    "TimerInfo",
    "ParamsInfo",
    "AppliedEffectInfo",
    "RewardGrantInfo",
    "ChestRewardInfo",
    # Service
    "APIService",
    "error_response",
    "create_app",
]
