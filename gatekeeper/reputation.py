"""Reputation scorekeeping — a bounded trust score per principal.

Scores start at DEFAULT_SCORE and are clamped to [MIN_SCORE, MAX_SCORE]
after every change.  Reading an unknown principal returns the default
without creating a record; only adjust() creates one.  Scores change only
on explicit events, there is no time-based recovery.
"""

import time
from dataclasses import dataclass, asdict
from typing import Callable

from gatekeeper.errors import check_key
from gatekeeper.locks import StripedLock

DEFAULT_SCORE = 100
MIN_SCORE = 0
MAX_SCORE = 200

Clock = Callable[[], float]


@dataclass
class ReputationRecord:
    score: int
    last_updated: float


class ReputationBook:

    def __init__(self, locks: StripedLock | None = None, clock: Clock = time.time):
        self._locks = locks or StripedLock()
        self._clock = clock
        self._records: dict[str, ReputationRecord] = {}

    def adjust(self, key: str, delta: int, now: float | None = None) -> int:
        """Apply *delta* and return the clamped score.

        The record is stamped with *now* when given, else with the clock.
        """
        check_key(key)
        now = self._clock() if now is None else now
        with self._locks.for_key(key):
            record = self._records.get(key)
            if record is None:
                record = self._records[key] = ReputationRecord(
                    score=DEFAULT_SCORE, last_updated=now,
                )
            record.score = max(MIN_SCORE, min(MAX_SCORE, record.score + delta))
            record.last_updated = now
            return record.score

    def read(self, key: str) -> int:
        record = self._records.get(key)
        return record.score if record is not None else DEFAULT_SCORE

    def snapshot(self) -> dict[str, dict]:
        snap = {}
        for key in list(self._records):
            with self._locks.for_key(key):
                record = self._records.get(key)
                if record is not None:
                    snap[key] = asdict(record)
        return snap

    def reset(self, key: str) -> bool:
        with self._locks.for_key(key):
            return self._records.pop(key, None) is not None

    def __contains__(self, key) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)
