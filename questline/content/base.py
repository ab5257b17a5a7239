"""
Content Repository contract - read-only provider of quest definitions.

Content is immutable once loaded, so implementations should cache by
(quest_id, locale) and must be safe to call from concurrent requests.
"""

from __future__ import annotations
from abc import ABC, abstractmethod

from ..content_schema import QuestContent


class ContentRepository(ABC):

    @abstractmethod
    def get(self, quest_id: str, locale: str | None = None) -> QuestContent:
        """
        Return the quest definition for a locale.

        Raises ContentNotFoundError if no content exists for the combination.
        """
