"""
Pytest fixtures for Questline tests.
"""

import pytest

from ..content import InMemoryContentRepository
from ..content_schema import QuestContent
from ..engine_core import (
    ChestService,
    EffectResolver,
    HmacRng,
    QuestRuntime,
    RewardsExporter,
)
from ..progress import InMemoryProgressStore

TEST_SECRET = "test-secret"
FIXED_NOW = 1_700_000_000.0


def odyssey_data() -> dict:
    """Two-stage quest with a chest, a loop and a gated second stage."""
    return {
        "quest_id": "odyssey",
        "version": "1",
        "reward_pools": {
            "pool_basic": {
                "title": "Basic loot",
                "variants": [
                    {
                        "id": "v_coins",
                        "weight": 3,
                        "rewards": [{"type": "coins", "amount": 50}],
                    },
                    {
                        "id": "v_spins",
                        "weight": 1,
                        "rewards": [
                            {"type": "free_spins", "amount": 10, "game_id": "slots", "denom": 0.2},
                            {"type": "coins", "amount": 5},
                        ],
                    },
                ],
            },
        },
        "chests": {
            "chest_wood": {
                "title": "Wooden chest",
                "art": "chest_wood.png",
                "use_pool": "pool_basic",
                "overrides": {"variants": [{"id": "v_spins", "weight": 5}]},
            },
        },
        "stages": [
            {
                "key": "S1",
                "title": "The Harbor",
                "entry_cards": [{"id": "card_1", "art": "harbor.png", "cta": "Set sail"}],
                "scenes": [
                    {
                        "id": "s1",
                        "text": "A storm gathers over the harbor.",
                        "choices": [
                            {
                                "id": "c_brave",
                                "label": "Sail into the storm",
                                "effects": [
                                    {"type": "tag", "key": "courage", "value": 3},
                                    {"type": "stat", "key": "hp", "value": -2},
                                ],
                                "next": "s2",
                            },
                            {
                                "id": "c_wait",
                                "label": "Wait it out",
                                "effects": [],
                                "next": "s1",
                            },
                        ],
                    },
                    {
                        "id": "s2",
                        "text": "A chest washes ashore.",
                        "choices": [
                            {
                                "id": "c_take",
                                "label": "Take the chest",
                                "effects": [
                                    {"type": "item", "id": "rope", "value": 1},
                                    {"type": "spawn_chest", "chest_id": "chest_wood"},
                                ],
                            },
                        ],
                        "rewards_on_complete": [{"id": "gold", "amount": 10}],
                    },
                ],
                "connect": {"next_stage_key": "S2"},
            },
            {
                "key": "S2",
                "title": "The Island",
                "conditions": [{"param": "gold", "min": 10}],
                "scenes": [
                    {
                        "id": "s3",
                        "text": "The island is quiet.",
                        "choices": [{"id": "c_rest", "label": "Rest", "effects": []}],
                    },
                ],
            },
        ],
    }


class RecordingExporter(RewardsExporter):
    """Collects exports; optionally fails every call."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def export(self, user_id, rewards):
        self.calls.append((user_id, list(rewards)))
        if self.fail:
            raise RuntimeError("exporter down")


@pytest.fixture
def odyssey() -> QuestContent:
    """Parsed sample quest."""
    return QuestContent.from_dict(odyssey_data())


@pytest.fixture
def content_repo(odyssey: QuestContent) -> InMemoryContentRepository:
    return InMemoryContentRepository([odyssey])


@pytest.fixture
def store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@pytest.fixture
def resolver(store) -> EffectResolver:
    return EffectResolver(store=store)


@pytest.fixture
def runtime(content_repo, store, resolver) -> QuestRuntime:
    """Quest runtime with a frozen clock."""
    return QuestRuntime(
        content=content_repo,
        store=store,
        effects=resolver,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def exporter() -> RecordingExporter:
    return RecordingExporter()


@pytest.fixture
def chest_service(store, exporter) -> ChestService:
    return ChestService(store=store, rng=HmacRng(TEST_SECRET), exporter=exporter)
