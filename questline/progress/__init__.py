"""
Progress Module - Where session state and chest instances live.

The engine only talks to the ProgressStore contract. Two adapters ship:
- InMemoryProgressStore: process-local, nothing survives a restart
- SqlProgressStore: SQLAlchemy-backed, any database SQLAlchemy can reach
"""

from .base import ProgressStore
from .locks import KeyedLocks
from .memory import InMemoryProgressStore
from .sql import SqlProgressStore


def create_progress_store(database_url: str | None = None) -> ProgressStore:
    """SQL store when a database URL is configured, in-memory otherwise."""
    if database_url:
        return SqlProgressStore(database_url)
    return InMemoryProgressStore()


__all__ = [
    "ProgressStore",
    "KeyedLocks",
    "InMemoryProgressStore",
    "SqlProgressStore",
    "create_progress_store",
]
