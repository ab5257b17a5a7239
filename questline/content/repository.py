"""
Content Repositories - Where quest definitions come from.

FileContentRepository layout (first existing file wins):
    <folder>/<locale>/<quest_id>.json
    <folder>/<quest_id>_<locale>.json
    <folder>/<quest_id>.json

Parsed content is cached by (quest_id, locale) for the lifetime of the
repository. Content is immutable, so the cache never goes stale on its own;
invalidate() exists for deployments that hot-swap content files.
"""

from __future__ import annotations
from pathlib import Path
import json
import logging
import threading

from ..content_schema import QuestContent
from ..errors import ContentIntegrityError, ContentNotFoundError
from .base import ContentRepository

logger = logging.getLogger(__name__)


class InMemoryContentRepository(ContentRepository):
    """
    Content registered in code.

    Lookup tries (quest_id, locale) first, then the locale-less entry.

    Usage:
        repo = InMemoryContentRepository()
        repo.register(content)
        repo.get("odyssey", "en")
    """

    def __init__(self, contents: list[QuestContent] | None = None):
        self._contents: dict[tuple[str, str | None], QuestContent] = {}
        for content in contents or []:
            self.register(content)

    def register(self, content: QuestContent, locale: str | None = None) -> None:
        self._contents[(content.quest_id, locale or content.locale)] = content

    def get(self, quest_id: str, locale: str | None = None) -> QuestContent:
        content = self._contents.get((quest_id, locale))
        if content is None:
            content = self._contents.get((quest_id, None))
        if content is None:
            raise ContentNotFoundError(quest_id, locale)
        return content


class FileContentRepository(ContentRepository):
    """JSON files on disk, parsed once per (quest_id, locale)."""

    def __init__(self, folder: str | Path):
        self.folder = Path(folder)
        self._cache: dict[tuple[str, str | None], QuestContent] = {}
        self._lock = threading.Lock()

    def get(self, quest_id: str, locale: str | None = None) -> QuestContent:
        cache_key = (quest_id, locale)
        with self._lock:
            cached = self._cache.get(cache_key)
            if cached is not None:
                logger.debug("Content cache hit for %s (locale=%s)", quest_id, locale)
                return cached

            path = self._find_file(quest_id, locale)
            if path is None:
                raise ContentNotFoundError(quest_id, locale)

            content = self._load(path)
            self._cache[cache_key] = content
            logger.info("Loaded quest %s (locale=%s) from %s", quest_id, locale, path)
            return content

    def invalidate(self, quest_id: str, locale: str | None = None) -> None:
        """Drop one cached entry."""
        with self._lock:
            self._cache.pop((quest_id, locale), None)

    def clear(self) -> None:
        """Drop every cached entry."""
        with self._lock:
            self._cache.clear()

    def candidate_paths(self, quest_id: str, locale: str | None = None) -> list[Path]:
        candidates = []
        if locale:
            candidates.append(self.folder / locale / f"{quest_id}.json")
            candidates.append(self.folder / f"{quest_id}_{locale}.json")
        candidates.append(self.folder / f"{quest_id}.json")
        return candidates

    def _find_file(self, quest_id: str, locale: str | None) -> Path | None:
        for path in self.candidate_paths(quest_id, locale):
            if path.is_file():
                return path
        return None

    def _load(self, path: Path) -> QuestContent:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ContentIntegrityError(f"Invalid JSON in {path.name}: {e}") from e
        return QuestContent.from_dict(data)
