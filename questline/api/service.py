"""
API Service - Business logic layer between API and engine.

The service:
1. Wires content, progress store, RNG and exporter into the engine
2. Applies the default locale
3. Translates engine views into response models
4. Maps domain errors to error codes and HTTP statuses

This layer is framework-agnostic (used by the FastAPI app and the CLI).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Mapping, Optional
import logging

from ..config import QuestlineConfig
from ..content import ContentRepository, FileContentRepository
from ..engine_core import (
    ChestService,
    ChoiceRequest,
    EffectResolver,
    HmacRng,
    LoggingRewardsExporter,
    QuestRuntime,
    RewardsExporter,
)
from ..errors import (
    ChestNotFoundError,
    ChestQuestMismatchError,
    ContentNotFoundError,
    DegeneratePoolError,
    ErrorKind,
    InvalidWeightError,
    ProgressConflictError,
    QuestlineError,
    UnknownChoiceError,
    UnknownSceneError,
)
from ..progress import ProgressStore, InMemoryProgressStore, create_progress_store
from .schemas import (
    ChestOpenResponse,
    ChoiceRequestBody,
    ChoiceResponse,
    ErrorCode,
    ErrorResponse,
    StateResponse,
)

logger = logging.getLogger(__name__)


# Most specific first; the first isinstance match wins
_ERROR_CODES: list[tuple[type[QuestlineError], ErrorCode, int]] = [
    (ContentNotFoundError, ErrorCode.CONTENT_NOT_FOUND, 404),
    (UnknownSceneError, ErrorCode.UNKNOWN_SCENE, 400),
    (UnknownChoiceError, ErrorCode.UNKNOWN_CHOICE, 400),
    (ChestNotFoundError, ErrorCode.CHEST_NOT_FOUND, 404),
    (ChestQuestMismatchError, ErrorCode.CHEST_NOT_IN_QUEST, 403),
    (InvalidWeightError, ErrorCode.INVALID_POOL, 403),
    (DegeneratePoolError, ErrorCode.INVALID_POOL, 403),
    (ProgressConflictError, ErrorCode.PROGRESS_CONFLICT, 409),
]


def error_response(error: Exception) -> tuple[int, ErrorResponse]:
    """
    HTTP status and body for any exception.

    Domain errors carry their message; anything else is logged and reported
    with a generic message only.
    """
    if isinstance(error, QuestlineError):
        for error_type, code, status in _ERROR_CODES:
            if isinstance(error, error_type):
                return status, ErrorResponse(error=error.message, error_code=code)
        if error.kind == ErrorKind.NOT_PERMITTED:
            return 403, ErrorResponse(error=error.message, error_code=ErrorCode.NOT_PERMITTED)
        return 400, ErrorResponse(error=error.message, error_code=ErrorCode.INVALID_REQUEST)

    logger.error("Unhandled error", exc_info=error)
    return 500, ErrorResponse(error="Internal server error", error_code=ErrorCode.INTERNAL_ERROR)


@dataclass
class APIService:
    """
    Main API service.

    Usage:
        service = APIService.from_config(QuestlineConfig.from_env())

        state = service.get_state("u1", "odyssey")
        outcome = service.apply_choice("u1", "odyssey", ChoiceRequestBody(choice_id="c1"))
        result = service.open_chest("u1", "odyssey", chest_instance_id)
    """
    runtime: QuestRuntime
    chests: ChestService
    config: QuestlineConfig = field(default_factory=QuestlineConfig)

    @classmethod
    def create(
        cls,
        content: ContentRepository,
        store: Optional[ProgressStore] = None,
        rng_secret: str | bytes | None = None,
        exporter: Optional[RewardsExporter] = None,
        config: Optional[QuestlineConfig] = None,
    ) -> APIService:
        """Wire the engine from explicit collaborators."""
        config = config or QuestlineConfig()
        store = store or InMemoryProgressStore()

        runtime = QuestRuntime(
            content=content,
            store=store,
            effects=EffectResolver(store=store),
            timer_seconds=config.timer_seconds,
        )
        chests = ChestService(
            store=store,
            rng=HmacRng(rng_secret if rng_secret is not None else config.rng_secret),
            exporter=exporter or LoggingRewardsExporter(),
        )
        return cls(runtime=runtime, chests=chests, config=config)

    @classmethod
    def from_config(cls, config: Optional[QuestlineConfig] = None) -> APIService:
        """Wire the engine from process configuration."""
        config = config or QuestlineConfig.from_env()
        if config.uses_default_secret:
            logger.warning("QUESTLINE_RNG_SECRET is not set; chest draws use the default secret")

        service = cls.create(
            content=FileContentRepository(config.content_dir),
            store=create_progress_store(config.database_url),
            config=config,
        )
        logger.info(
            "Questline service ready (env=%s, content=%s, store=%s)",
            config.env,
            config.content_dir,
            type(service.runtime.store).__name__,
        )
        return service

    # =========================================================================
    # Quest operations
    # =========================================================================

    def get_state(
        self,
        user_id: str,
        quest_id: str,
        locale: Optional[str] = None,
    ) -> StateResponse:
        view = self.runtime.get_state(user_id, quest_id, self._locale(locale))
        return StateResponse.model_validate(view.to_dict())

    def preview_stage(
        self,
        quest_id: str,
        parameters: Mapping[str, int],
        locale: Optional[str] = None,
    ) -> StateResponse:
        view = self.runtime.get_stage_preview(quest_id, parameters, self._locale(locale))
        return StateResponse.model_validate(view.to_dict())

    def apply_choice(
        self,
        user_id: str,
        quest_id: str,
        body: ChoiceRequestBody,
        locale: Optional[str] = None,
    ) -> ChoiceResponse:
        outcome = self.runtime.apply_choice(
            user_id,
            quest_id,
            ChoiceRequest(choice_id=body.choice_id, current_scene_id=body.current_scene_id),
            self._locale(locale),
        )
        return ChoiceResponse.model_validate(outcome.to_dict())

    # =========================================================================
    # Chest operations
    # =========================================================================

    def open_chest(
        self,
        user_id: str,
        quest_id: str,
        chest_instance_id: str,
        idempotency_key: Optional[str] = None,
    ) -> ChestOpenResponse:
        result = self.chests.open(user_id, quest_id, chest_instance_id, idempotency_key)
        return ChestOpenResponse.model_validate(result.to_dict())

    def _locale(self, locale: Optional[str]) -> Optional[str]:
        return locale or self.config.default_locale
