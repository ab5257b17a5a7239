"""
FastAPI Application - REST API for the game client.

Endpoints:
    GET    /v1/quests/{quest_id}/state           Current scene, choices and counters
    POST   /v1/quests/{quest_id}/stage           Preview the stage a parameter map unlocks
    POST   /v1/quests/{quest_id}/choice          Apply a choice
    POST   /v1/chests/{chest_instance_id}/open   Open a chest (?quest_id=)
    GET    /health                               Health check

Headers:
    X-User-Id        Player id (default: demo-user)
    X-Locale         Content locale (default: configured locale)
    Idempotency-Key  Client request id for chest opens

All responses are JSON with explicit Pydantic schemas. Domain errors are
returned as ErrorResponse with a machine-readable error_code.
"""

from typing import Annotated, Optional

from fastapi import Body, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import QuestlineError
from .schemas import (
    ChestOpenResponse,
    ChoiceRequestBody,
    ChoiceResponse,
    ErrorCode,
    ErrorResponse,
    HealthResponse,
    StateResponse,
)
from .service import APIService, error_response

DEFAULT_USER_ID = "demo-user"

UserIdHeader = Annotated[str, Header(alias="X-User-Id", description="Player id")]
LocaleHeader = Annotated[Optional[str], Header(alias="X-Locale", description="Content locale")]


def create_app(service: Optional[APIService] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: Optional APIService instance (built from the environment if not provided)

    Returns:
        FastAPI application instance
    """
    api_service = service or APIService.from_config()

    app = FastAPI(
        title="Questline API",
        description="""
Quest progression engine - scenes, choices, counters and reward chests.

## Chest Opening

`POST /v1/chests/{id}/open` draws a reward once. Every repeat call returns the
same `combination_id`, `variant_id` and rewards.

## Error Codes

| Code | Description |
|------|-------------|
| `CONTENT_NOT_FOUND` | No content for the quest and locale |
| `UNKNOWN_SCENE` | Scene is not part of the current stage |
| `UNKNOWN_CHOICE` | Choice is not offered by the scene |
| `CHEST_NOT_FOUND` | Chest instance does not exist |
| `CHEST_NOT_IN_QUEST` | Chest instance belongs to another quest |
| `INVALID_POOL` | Reward pool cannot be drawn from |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_service.config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Error handlers
    # =========================================================================

    def make_error_response(error: Exception) -> JSONResponse:
        status_code, body = error_response(error)
        return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

    @app.exception_handler(QuestlineError)
    async def handle_domain_error(request: Request, exc: QuestlineError) -> JSONResponse:
        return make_error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        body = ErrorResponse(
            error="Request validation failed",
            error_code=ErrorCode.VALIDATION_ERROR,
            details={"errors": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
                for e in exc.errors()
            ]},
        )
        return JSONResponse(status_code=400, content=body.model_dump(mode="json"))

    @app.exception_handler(Exception)
    async def handle_internal_error(request: Request, exc: Exception) -> JSONResponse:
        return make_error_response(exc)

    # =========================================================================
    # Quest Endpoints
    # =========================================================================

    @app.get(
        "/v1/quests/{quest_id}/state",
        response_model=StateResponse,
        responses={
            400: {"model": ErrorResponse},
            404: {"model": ErrorResponse, "description": "Quest content not found"},
        },
        tags=["Quests"],
        summary="Get the current scene",
    )
    def get_state(
        quest_id: str,
        user_id: UserIdHeader = DEFAULT_USER_ID,
        locale: LocaleHeader = None,
    ) -> StateResponse:
        """
        Current scene, its choices, a timer placeholder and all counters.

        A first visit creates the session at the quest's first stage.
        """
        return api_service.get_state(user_id, quest_id, locale)

    @app.post(
        "/v1/quests/{quest_id}/stage",
        response_model=StateResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Quests"],
        summary="Preview the stage a parameter map unlocks",
    )
    def preview_stage(
        quest_id: str,
        parameters: Annotated[dict[str, int], Body(description="Parameter name to value")],
        locale: LocaleHeader = None,
    ) -> StateResponse:
        """
        Stateless preview. No session is read or written.

        **Request Body:**
        ```json
        {"courage": 3, "gold": 10}
        ```
        """
        return api_service.preview_stage(quest_id, parameters, locale)

    @app.post(
        "/v1/quests/{quest_id}/choice",
        response_model=ChoiceResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Unknown scene or choice"},
            404: {"model": ErrorResponse, "description": "Quest content not found"},
        },
        tags=["Quests"],
        summary="Apply a choice",
    )
    def apply_choice(
        quest_id: str,
        body: ChoiceRequestBody,
        user_id: UserIdHeader = DEFAULT_USER_ID,
        locale: LocaleHeader = None,
    ) -> ChoiceResponse:
        """
        Apply a choice's effects and advance the quest.

        **Request Body:**
        ```json
        {"choice_id": "c_brave", "current_scene_id": "s1"}
        ```
        """
        return api_service.apply_choice(user_id, quest_id, body, locale)

    # =========================================================================
    # Chest Endpoints
    # =========================================================================

    @app.post(
        "/v1/chests/{chest_instance_id}/open",
        response_model=ChestOpenResponse,
        responses={
            400: {"model": ErrorResponse},
            403: {"model": ErrorResponse, "description": "Chest belongs to another quest"},
            404: {"model": ErrorResponse, "description": "Chest not found"},
        },
        tags=["Chests"],
        summary="Open a chest",
    )
    def open_chest(
        chest_instance_id: str,
        quest_id: Annotated[str, Query(description="Quest the chest was spawned in")],
        user_id: UserIdHeader = DEFAULT_USER_ID,
        idempotency_key: Annotated[
            Optional[str], Header(alias="Idempotency-Key", description="Client request id")
        ] = None,
    ) -> ChestOpenResponse:
        """Draw the chest's reward on first open; replay it afterwards."""
        return api_service.open_chest(user_id, quest_id, chest_instance_id, idempotency_key)

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="questline",
            version=__version__,
        )

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Questline API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/health",
        }

    return app


# For running directly: uvicorn --factory questline.api.app:create_app
