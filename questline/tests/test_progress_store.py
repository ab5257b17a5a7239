"""
Tests for the progress store adapters.

Every contract test runs against both the in-memory store and the
SQLAlchemy store on an in-memory SQLite database.
"""

import threading

import pytest

from ..engine_core import ChestStatus
from ..errors import ChestNotFoundError, ProgressConflictError
from ..progress import (
    InMemoryProgressStore,
    KeyedLocks,
    SqlProgressStore,
    create_progress_store,
)

SNAPSHOT = {
    "chest_id": "chest_wood",
    "pool": {"title": "Basic", "variants": [{"id": "v1", "weight": 1, "rewards": []}]},
}
RESULT = {
    "chest_instance_id": "x",
    "combination_id": "0" * 32,
    "variant_id": "v1",
    "rewards": [{"type": "coins", "amount": 5, "game_id": None, "denom": 0.25}],
}


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    """Each store adapter in turn."""
    if request.param == "memory":
        return InMemoryProgressStore()
    return SqlProgressStore("sqlite://")


class TestSessions:
    """Tests for session persistence."""

    def test_created_on_first_access(self, any_store):
        state = any_store.get_or_create_session("u1", "odyssey", "S1")
        assert state.current_stage_key == "S1"
        assert state.current_scene_id is None
        assert (state.tags, state.stats, state.inventory) == ({}, {}, {})

    def test_start_stage_only_used_once(self, any_store):
        """An existing session ignores the start stage argument."""
        any_store.get_or_create_session("u1", "odyssey", "S1")
        assert any_store.get_or_create_session("u1", "odyssey", "S9").current_stage_key == "S1"

    def test_save_and_reload(self, any_store):
        state = any_store.get_or_create_session("u1", "odyssey", "S1")
        state.current_stage_key = "S2"
        state.current_scene_id = "s3"
        state.tags["courage"] = 3
        state.stats["hp"] = -2
        state.inventory["gold"] = 10
        any_store.save_session(state)

        loaded = any_store.get_or_create_session("u1", "odyssey", "S1")
        assert loaded == state

    def test_returned_state_is_detached(self, any_store):
        """Mutating a loaded state is invisible until saved."""
        state = any_store.get_or_create_session("u1", "odyssey", "S1")
        state.tags["courage"] = 99
        assert any_store.get_or_create_session("u1", "odyssey", "S1").tags == {}

    def test_sessions_keyed_by_user_and_quest(self, any_store):
        state = any_store.get_or_create_session("u1", "odyssey", "S1")
        state.tags["x"] = 1
        any_store.save_session(state)

        assert any_store.get_or_create_session("u2", "odyssey", "S1").tags == {}
        assert any_store.get_or_create_session("u1", "iliad", "S1").tags == {}

    def test_save_bumps_version(self, any_store):
        state = any_store.get_or_create_session("u1", "odyssey", "S1")
        assert state.version == 0
        any_store.save_session(state)
        assert state.version == 1
        assert any_store.get_or_create_session("u1", "odyssey", "S1").version == 1

    def test_stale_save_rejected(self, any_store):
        """Saving a state loaded before another save raises and keeps the newer write."""
        first = any_store.get_or_create_session("u1", "odyssey", "S1")
        second = any_store.get_or_create_session("u1", "odyssey", "S1")
        first.stats["ticks"] = 1
        any_store.save_session(first)

        second.stats["ticks"] = 1
        with pytest.raises(ProgressConflictError):
            any_store.save_session(second)
        assert any_store.get_or_create_session("u1", "odyssey", "S1").stats == {"ticks": 1}

    def test_session_guard_is_reentrant(self, any_store):
        with any_store.session_guard("u1", "odyssey"):
            with any_store.session_guard("u1", "odyssey"):
                any_store.get_or_create_session("u1", "odyssey", "S1")


class TestChests:
    """Tests for chest instance persistence."""

    def test_create_and_get(self, any_store):
        state = any_store.get_or_create_session("u1", "odyssey", "S1")
        chest_id = any_store.create_chest_instance(state, "chest_wood", SNAPSHOT)

        chest = any_store.get_chest_instance(chest_id)
        assert chest.id == chest_id
        assert chest.user_id == "u1"
        assert chest.quest_id == "odyssey"
        assert chest.chest_id == "chest_wood"
        assert chest.status == ChestStatus.CLOSED
        assert chest.pool_snapshot == SNAPSHOT
        assert chest.result_snapshot is None

    def test_ids_unique(self, any_store):
        state = any_store.get_or_create_session("u1", "odyssey", "S1")
        ids = {any_store.create_chest_instance(state, "chest_wood", SNAPSHOT) for _ in range(5)}
        assert len(ids) == 5

    def test_missing_chest(self, any_store):
        assert any_store.get_chest_instance("missing") is None

    def test_mark_opened_once(self, any_store):
        """Only the first transition succeeds; the stored result never changes."""
        state = any_store.get_or_create_session("u1", "odyssey", "S1")
        chest_id = any_store.create_chest_instance(state, "chest_wood", SNAPSHOT)

        assert any_store.mark_chest_opened(chest_id, RESULT) is True
        assert any_store.mark_chest_opened(chest_id, {**RESULT, "variant_id": "v2"}) is False

        chest = any_store.get_chest_instance(chest_id)
        assert chest.is_opened
        assert chest.result_snapshot == RESULT

    def test_mark_missing_chest(self, any_store):
        with pytest.raises(ChestNotFoundError):
            any_store.mark_chest_opened("missing", RESULT)


class TestSqlProgressStore:
    """SQL-specific behavior."""

    def test_schema_creation_idempotent(self):
        store = SqlProgressStore("sqlite://")
        store.create_schema()
        store.get_or_create_session("u1", "odyssey", "S1")

    def test_file_database_shared_between_stores(self, tmp_path):
        """Two stores on one database see each other's writes."""
        url = f"sqlite:///{tmp_path / 'questline.db'}"
        first = SqlProgressStore(url)
        second = SqlProgressStore(url)

        state = first.get_or_create_session("u1", "odyssey", "S1")
        chest_id = first.create_chest_instance(state, "chest_wood", SNAPSHOT)
        assert second.mark_chest_opened(chest_id, RESULT) is True
        assert first.mark_chest_opened(chest_id, RESULT) is False
        assert first.get_chest_instance(chest_id).result_snapshot == RESULT

    def test_stores_on_one_database_do_not_lose_writes(self, tmp_path):
        """A save from one store is never overwritten by another holding older state."""
        url = f"sqlite:///{tmp_path / 'questline.db'}"
        first = SqlProgressStore(url)
        second = SqlProgressStore(url)

        mine = first.get_or_create_session("u1", "odyssey", "S1")
        theirs = second.get_or_create_session("u1", "odyssey", "S1")
        mine.stats["ticks"] = 1
        first.save_session(mine)

        theirs.stats["ticks"] = 1
        with pytest.raises(ProgressConflictError):
            second.save_session(theirs)

        reloaded = second.get_or_create_session("u1", "odyssey", "S1")
        reloaded.stats["ticks"] += 1
        second.save_session(reloaded)
        assert first.get_or_create_session("u1", "odyssey", "S1").stats == {"ticks": 2}


class TestFactory:
    """Tests for create_progress_store."""

    def test_memory_without_url(self):
        assert isinstance(create_progress_store(None), InMemoryProgressStore)

    def test_sql_with_url(self):
        assert isinstance(create_progress_store("sqlite://"), SqlProgressStore)


class TestKeyedLocks:
    """Tests for KeyedLocks."""

    def test_entries_released(self):
        locks = KeyedLocks()
        with locks.hold("a"):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_serializes_same_key(self):
        """Read-modify-write under the same key never loses updates."""
        locks = KeyedLocks()
        counter = {"value": 0}

        def bump():
            for _ in range(200):
                with locks.hold("k"):
                    current = counter["value"]
                    counter["value"] = current + 1

        threads = [threading.Thread(target=bump) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert counter["value"] == 1000
        assert len(locks) == 0
