"""Per-key locking for engine critical sections."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


def agent_key(agent_id: str) -> str:
    return f"agent:{agent_id}"


def property_key(property_id: str) -> str:
    return f"property:{property_id}"


class KeyedLockManager:
    """Re-entrant locks created on demand, one per key.

    ``hold`` always acquires in sorted key order so two operations that
    touch the same agents and properties can never deadlock each other.
    """

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        acquired = []
        try:
            for key in sorted(set(keys)):
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
