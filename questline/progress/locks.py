"""
Keyed Locks - One re-entrant lock per key, created on demand.

Used by the progress stores to serialize read-then-write sequences for a
single session or a single chest instance, without a global lock. Entries
are dropped once no thread holds or waits on them.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Hashable, Iterator
import threading


class KeyedLocks:
    """
    Usage:
        locks = KeyedLocks()
        with locks.hold(("session", user_id, quest_id)):
            state = load()
            mutate(state)
            save(state)
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[Hashable, list] = {}  # key -> [RLock, users]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1

        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
