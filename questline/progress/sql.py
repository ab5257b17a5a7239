"""
SQL Progress Store - Sessions and chests in a relational database via SQLAlchemy.

Tables:
    quest_progress   (user_id, quest_id) -> stage, scene and counter maps as JSON
    chest_instance   id -> owner, status, frozen pool snapshot, result

Consistency:
- Every operation runs in its own transaction (SessionLocal.begin())
- session_guard / chest_guard serialize read-then-write within this process
- Sessions carry a version; save_session only writes the version it loaded
  (UPDATE ... WHERE version = :version), so a save racing another process
  raises ProgressConflictError instead of overwriting its write
- Opening uses UPDATE ... WHERE status = 'closed', so across processes only
  the first result ever commits; later writers get False and read the winner
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any
import json
import logging
import uuid

from sqlalchemy import create_engine, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..engine_core.state import UserState, ChestInstance, ChestStatus
from ..errors import ChestNotFoundError, ProgressConflictError
from .base import ProgressStore
from .locks import KeyedLocks

logger = logging.getLogger(__name__)


SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS quest_progress (
        user_id VARCHAR(128) NOT NULL,
        quest_id VARCHAR(128) NOT NULL,
        stage_key VARCHAR(128) NOT NULL,
        scene_id VARCHAR(128),
        tags_json TEXT NOT NULL,
        stats_json TEXT NOT NULL,
        inventory_json TEXT NOT NULL,
        version INTEGER NOT NULL DEFAULT 0,
        updated_at VARCHAR(40) NOT NULL,
        PRIMARY KEY (user_id, quest_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chest_instance (
        id VARCHAR(64) PRIMARY KEY,
        user_id VARCHAR(128) NOT NULL,
        quest_id VARCHAR(128) NOT NULL,
        chest_id VARCHAR(128) NOT NULL,
        status VARCHAR(16) NOT NULL,
        pool_snapshot_json TEXT NOT NULL,
        result_json TEXT,
        combination_id VARCHAR(64),
        created_at VARCHAR(40) NOT NULL,
        opened_at VARCHAR(40)
    )
    """,
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _make_engine(url: str):
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every checkout sees an empty database
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, pool_pre_ping=True)


class SqlProgressStore(ProgressStore):
    """
    Usage:
        store = SqlProgressStore("sqlite:///questline.db")
        state = store.get_or_create_session("u1", "odyssey", "stage1")
    """

    def __init__(self, url: str):
        self.engine = _make_engine(url)
        self.SessionLocal = sessionmaker(bind=self.engine)
        self._key_locks = KeyedLocks()
        self.create_schema()

    def create_schema(self) -> None:
        with self.SessionLocal.begin() as session:
            for statement in SCHEMA:
                session.execute(text(statement))

    # =========================================================================
    # Sessions
    # =========================================================================

    def get_or_create_session(
        self,
        user_id: str,
        quest_id: str,
        start_stage_key: str,
    ) -> UserState:
        row = self._load_progress_row(user_id, quest_id)
        if row is None:
            try:
                with self.SessionLocal.begin() as session:
                    session.execute(
                        text(
                            """
                            INSERT INTO quest_progress
                                (user_id, quest_id, stage_key, scene_id,
                                 tags_json, stats_json, inventory_json, version, updated_at)
                            VALUES
                                (:uid, :qid, :stage, NULL, '{}', '{}', '{}', 0, :now)
                            """
                        ),
                        {"uid": user_id, "qid": quest_id, "stage": start_stage_key, "now": _now()},
                    )
                logger.debug("Started session %s/%s at stage %s", user_id, quest_id, start_stage_key)
            except IntegrityError:
                # Another process created it first; read theirs
                pass
            row = self._load_progress_row(user_id, quest_id)

        return UserState(
            user_id=user_id,
            quest_id=quest_id,
            current_stage_key=row.stage_key,
            current_scene_id=row.scene_id,
            tags=json.loads(row.tags_json),
            stats=json.loads(row.stats_json),
            inventory=json.loads(row.inventory_json),
            version=row.version,
        )

    def save_session(self, state: UserState) -> None:
        params = {
            "uid": state.user_id,
            "qid": state.quest_id,
            "stage": state.current_stage_key,
            "scene": state.current_scene_id,
            "tags": _dumps(state.tags),
            "stats": _dumps(state.stats),
            "inventory": _dumps(state.inventory),
            "version": state.version,
            "next_version": state.version + 1,
            "now": _now(),
        }
        with self.SessionLocal.begin() as session:
            result = session.execute(
                text(
                    """
                    UPDATE quest_progress
                    SET stage_key = :stage,
                        scene_id = :scene,
                        tags_json = :tags,
                        stats_json = :stats,
                        inventory_json = :inventory,
                        version = version + 1,
                        updated_at = :now
                    WHERE user_id = :uid AND quest_id = :qid AND version = :version
                    """
                ),
                params,
            )
            if result.rowcount == 0:
                exists = session.execute(
                    text("SELECT 1 FROM quest_progress WHERE user_id = :uid AND quest_id = :qid"),
                    params,
                ).first()
                if exists is not None:
                    logger.warning(
                        "Stale save for %s/%s at version %s",
                        state.user_id, state.quest_id, state.version,
                    )
                    raise ProgressConflictError(state.user_id, state.quest_id)
                session.execute(
                    text(
                        """
                        INSERT INTO quest_progress
                            (user_id, quest_id, stage_key, scene_id,
                             tags_json, stats_json, inventory_json, version, updated_at)
                        VALUES
                            (:uid, :qid, :stage, :scene, :tags, :stats, :inventory, :next_version, :now)
                        """
                    ),
                    params,
                )
        state.version += 1

    def session_guard(self, user_id: str, quest_id: str):
        return self._key_locks.hold(("session", user_id, quest_id))

    def _load_progress_row(self, user_id: str, quest_id: str):
        with self.SessionLocal() as session:
            return session.execute(
                text(
                    """
                    SELECT stage_key, scene_id, tags_json, stats_json, inventory_json, version
                    FROM quest_progress
                    WHERE user_id = :uid AND quest_id = :qid
                    """
                ),
                {"uid": user_id, "qid": quest_id},
            ).first()

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
        with self.SessionLocal.begin() as session:
            session.execute(
                text(
                    """
                    INSERT INTO chest_instance
                        (id, user_id, quest_id, chest_id, status,
                         pool_snapshot_json, result_json, combination_id, created_at, opened_at)
                    VALUES
                        (:id, :uid, :qid, :chest, :status, :pool, NULL, NULL, :now, NULL)
                    """
                ),
                {
                    "id": chest_instance_id,
                    "uid": state.user_id,
                    "qid": state.quest_id,
                    "chest": chest_id,
                    "status": ChestStatus.CLOSED.value,
                    "pool": _dumps(pool_snapshot),
                    "now": _now(),
                },
            )
        return chest_instance_id

    def get_chest_instance(self, chest_instance_id: str) -> ChestInstance | None:
        with self.SessionLocal() as session:
            row = session.execute(
                text(
                    """
                    SELECT id, user_id, quest_id, chest_id, status,
                           pool_snapshot_json, result_json
                    FROM chest_instance
                    WHERE id = :id
                    """
                ),
                {"id": chest_instance_id},
            ).first()
        if row is None:
            return None
        return ChestInstance(
            id=row.id,
            user_id=row.user_id,
            quest_id=row.quest_id,
            chest_id=row.chest_id,
            status=ChestStatus(row.status),
            pool_snapshot=json.loads(row.pool_snapshot_json),
            result_snapshot=json.loads(row.result_json) if row.result_json else None,
        )

    def mark_chest_opened(self, chest_instance_id: str, result_snapshot: dict[str, Any]) -> bool:
        with self.SessionLocal.begin() as session:
            result = session.execute(
                text(
                    """
                    UPDATE chest_instance
                    SET status = :opened,
                        result_json = :result,
                        combination_id = :combination_id,
                        opened_at = :now
                    WHERE id = :id AND status = :closed
                    """
                ),
                {
                    "id": chest_instance_id,
                    "opened": ChestStatus.OPENED.value,
                    "closed": ChestStatus.CLOSED.value,
                    "result": _dumps(result_snapshot),
                    "combination_id": result_snapshot.get("combination_id"),
                    "now": _now(),
                },
            )
            if result.rowcount == 1:
                return True
            exists = session.execute(
                text("SELECT 1 FROM chest_instance WHERE id = :id"),
                {"id": chest_instance_id},
            ).first()
        if exists is None:
            raise ChestNotFoundError(chest_instance_id)
        return False

    def chest_guard(self, chest_instance_id: str):
        return self._key_locks.hold(("chest", chest_instance_id))
