"""Content Module - read-only providers of quest definitions."""

from .base import ContentRepository
from .repository import InMemoryContentRepository, FileContentRepository

__all__ = [
    "ContentRepository",
    "InMemoryContentRepository",
    "FileContentRepository",
]
