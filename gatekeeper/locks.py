"""Striped per-key locking.

A fixed array of re-entrant locks, picked by key hash.  Two keys may share
a stripe (harmless contention); one key always maps to the same stripe, so
every read-modify-write on that key's records is serialized.  Re-entrant so
the engine can hold a key's lock across a whole request while the stores
it calls take the same lock again.
"""

import threading

DEFAULT_STRIPES = 64


class StripedLock:
    __slots__ = ("_locks",)

    def __init__(self, stripes: int = DEFAULT_STRIPES):
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._locks = tuple(threading.RLock() for _ in range(stripes))

    def for_key(self, key: str) -> threading.RLock:
        return self._locks[hash(key) % len(self._locks)]

    def __len__(self) -> int:
        return len(self._locks)
