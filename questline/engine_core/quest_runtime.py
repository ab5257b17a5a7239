"""
Quest Runtime - The per-request state machine.

States are (stage key, scene id or None) pairs. The initial state is
(first stage, None), where None means "first scene of the stage".

Transitions happen only through apply_choice:
- choice with next    -> (same stage, next)
- choice without next -> stage complete: fixed rewards credited,
                         (stage.next_stage_key, None)

Revisiting an already-completed stage is legal; loops in content are not
detected here. A scene without choices is a dead end: nothing auto-advances.

Concurrency:
    Each apply_choice runs inside the store's session guard, so concurrent
    choices for the same user and quest serialize instead of both applying
    to the same starting state. Across processes the store rejects a save
    over a newer session with ProgressConflictError; the choice fails and
    nothing it spawned is created.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Mapping, TYPE_CHECKING
import logging
import time

from ..content_schema import CounterNamespace, QuestContent, SceneDef, StageDef
from ..errors import ContentIntegrityError, UnknownChoiceError, UnknownSceneError
from .effect_resolver import EffectResolver
from .state import ParamsSnapshot, UserState
from .views import (
    ChoiceOutcome,
    ChoiceView,
    RewardGrant,
    SceneView,
    StateView,
    TimerView,
)

if TYPE_CHECKING:
    from ..content import ContentRepository
    from ..progress import ProgressStore

logger = logging.getLogger(__name__)

DEFAULT_TIMER_SECONDS = 1800


@dataclass(frozen=True)
class ChoiceRequest:
    """
    A player's selection.

    current_scene_id, when given, overrides the stored scene as the acting
    scene (clients send what they were looking at).
    """
    choice_id: str
    current_scene_id: str | None = None


@dataclass
class QuestRuntime:
    """
    Usage:
        runtime = QuestRuntime(content=repo, store=store, effects=EffectResolver(store))
        view = runtime.get_state("u1", "odyssey")
        outcome = runtime.apply_choice("u1", "odyssey", ChoiceRequest("c_brave"))
    """
    content: ContentRepository
    store: ProgressStore
    effects: EffectResolver
    timer_seconds: int = DEFAULT_TIMER_SECONDS
    clock: Callable[[], float] = field(default=time.time)

    # =========================================================================
    # Read operations
    # =========================================================================

    def get_state(self, user_id: str, quest_id: str, locale: str | None = None) -> StateView:
        """Current scene, its choices and a full counter snapshot."""
        content = self.content.get(quest_id, locale)
        with self.store.session_guard(user_id, quest_id):
            state = self.store.get_or_create_session(
                user_id, quest_id, content.first_stage.key
            )
        stage = content.get_stage(state.current_stage_key)
        if stage is None:
            # Advanced past the last authored stage
            logger.warning(
                "Stage %s of %s has no content; returning an empty view",
                state.current_stage_key, quest_id,
            )
            return StateView(
                scene=SceneView(
                    id="",
                    stage_key=state.current_stage_key,
                    title="",
                    description="",
                ),
                params=state.snapshot(),
            )
        scene = stage.get_scene(state.current_scene_id) or stage.first_scene

        return StateView(
            scene=self._scene_view(stage, scene),
            choices=[ChoiceView(id=c.id, text=c.label) for c in scene.choices],
            timer=TimerView(
                ends_at=self.clock() + self.timer_seconds,
                duration_seconds=self.timer_seconds,
            ),
            params=state.snapshot(),
        )

    def get_stage_preview(
        self,
        quest_id: str,
        parameters: Mapping[str, int],
        locale: str | None = None,
    ) -> StateView:
        """
        Which stage a hypothetical parameter map unlocks.

        Walks stages in order, moving past every stage whose conditions hold
        and stopping at the first that fails. Returns the first scene of the
        last satisfied stage (the first stage if none is satisfied).
        Session state is never read or written.
        """
        content = self.content.get(quest_id, locale)
        params = dict(parameters)

        stage = content.first_stage
        for candidate in content.stages:
            if not candidate.conditions_met(params):
                break
            stage = candidate

        scene = stage.first_scene
        return StateView(
            scene=self._scene_view(stage, scene),
            choices=[ChoiceView(id=c.id, text=c.label) for c in scene.choices],
            timer=None,
            params=ParamsSnapshot(inventory=params),
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def apply_choice(
        self,
        user_id: str,
        quest_id: str,
        request: ChoiceRequest,
        locale: str | None = None,
    ) -> ChoiceOutcome:
        """
        Resolve the acting scene and choice, apply effects, advance.

        Raises:
            UnknownSceneError: request names a scene not in the current stage
            UnknownChoiceError: choice id not offered by the acting scene
            ContentIntegrityError: effects reference missing chests/pools
            ProgressConflictError: another process saved the session first
        """
        content = self.content.get(quest_id, locale)

        with self.store.session_guard(user_id, quest_id):
            state = self.store.get_or_create_session(
                user_id, quest_id, content.first_stage.key
            )
            stage = self._current_stage(content, state)
            scene = self._acting_scene(stage, state, request.current_scene_id)

            choice = scene.get_choice(request.choice_id)
            if choice is None:
                raise UnknownChoiceError(request.choice_id, scene.id)

            before = state.snapshot()
            batch = self.effects.prepare(content, state, choice.effects)

            grants: list[RewardGrant] = []
            if choice.completes_stage:
                grants = self._complete_stage(state, stage, scene)
            else:
                state.current_scene_id = choice.next

            applied = self.effects.commit(state, batch)
            after = state.snapshot()

            logger.info(
                "Choice %s/%s by %s in %s: stage=%s scene=%s",
                scene.id, choice.id, user_id, quest_id,
                state.current_stage_key, state.current_scene_id,
            )

            next_view = self.get_state(user_id, quest_id, locale)

        return ChoiceOutcome(
            previous_scene_id=scene.id,
            selected_choice_id=choice.id,
            params_before=before,
            params_after=after,
            params_delta=before.delta(after),
            effects_applied=applied.effects_applied,
            rewards=grants,
            spawned_chest_ids=applied.spawned_chest_ids,
            stage_completed=choice.completes_stage,
            next=next_view,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _complete_stage(
        self,
        state: UserState,
        stage: StageDef,
        scene: SceneDef,
    ) -> list[RewardGrant]:
        grants = []
        for reward in scene.rewards_on_complete:
            state.add(CounterNamespace.INVENTORY, reward.id, reward.amount)
            grants.append(RewardGrant(id=reward.id, type=reward.type, value=reward.amount))

        # A terminal stage has no next key; completing it replays the stage.
        state.current_stage_key = stage.next_stage_key or stage.key
        state.current_scene_id = None
        return grants

    def _current_stage(self, content: QuestContent, state: UserState) -> StageDef:
        stage = content.get_stage(state.current_stage_key)
        if stage is None:
            raise ContentIntegrityError(
                f"Stage {state.current_stage_key!r} not found in quest {content.quest_id!r}"
            )
        return stage

    def _acting_scene(
        self,
        stage: StageDef,
        state: UserState,
        requested_scene_id: str | None,
    ) -> SceneDef:
        if requested_scene_id:
            scene = stage.get_scene(requested_scene_id)
            if scene is None:
                raise UnknownSceneError(requested_scene_id, stage.key)
            return scene
        return stage.get_scene(state.current_scene_id) or stage.first_scene

    def _scene_view(self, stage: StageDef, scene: SceneDef) -> SceneView:
        return SceneView(
            id=scene.id,
            stage_key=stage.key,
            title=stage.title,
            description=scene.text,
            image=stage.image,
        )
