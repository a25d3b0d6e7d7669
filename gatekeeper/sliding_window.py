"""Sliding request log for one (action class, principal) pair.

Deque of hit timestamps: O(1) append, amortized O(1) eviction.  A sliding
log rather than a fixed window, so a client cannot squeeze two full
allowances into the seconds either side of a window boundary.

Not thread-safe on its own; WindowCounter serializes access per key.
"""

from collections import deque


class SlidingWindow:
    __slots__ = ("max_age", "_buf")

    def __init__(self, max_age_seconds: float):
        self.max_age = max_age_seconds
        self._buf: deque[float] = deque()

    @property
    def latest(self) -> float | None:
        """Timestamp of the newest hit, or None when empty."""
        return self._buf[-1] if self._buf else None

    def add(self, timestamp: float) -> int:
        """Record a hit and return how many hits the window now holds.

        A timestamp older than the newest stored hit (clock went backwards)
        is recorded at the newest hit's time so the log stays ordered.
        """
        latest = self.latest
        if latest is not None and timestamp < latest:
            timestamp = latest
        self._evict(timestamp)
        self._buf.append(timestamp)
        return len(self._buf)

    def count(self, now: float) -> int:
        """Number of hits currently inside the window."""
        self._evict(now)
        return len(self._buf)

    def clear(self) -> None:
        self._buf.clear()

    def _evict(self, now: float) -> None:
        # Strict <: a hit exactly max_age old still counts.
        cutoff = now - self.max_age
        while self._buf and self._buf[0] < cutoff:
            self._buf.popleft()

    def __len__(self) -> int:
        return len(self._buf)
