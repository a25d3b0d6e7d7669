"""Penalty state machine — violation counting and timed blocks.

Per principal there are two states:

  CLEAR    no record, or blocked_until is unset / already in the past
  BLOCKED  blocked_until > now

A threshold crossing moves CLEAR -> BLOCKED and bumps violation_count.
BLOCKED -> CLEAR happens lazily: the next admission check after expiry
unsets blocked_until.  violation_count is never reset except by an
administrative reset, so the Nth lifetime violation always lands on the
Nth escalation tier no matter how long ago the previous one was.
"""

import enum
import logging
from dataclasses import dataclass, asdict

from gatekeeper import metrics
from gatekeeper.errors import check_key, check_now
from gatekeeper.locks import StripedLock

logger = logging.getLogger(__name__)

# Block length in seconds for the 1st, 2nd, and every later violation.
ESCALATION_TIERS = (60, 5 * 60, 60 * 60)


def escalate(violation_count: int) -> int:
    """Block seconds for a principal's Nth lifetime violation (N >= 1)."""
    if violation_count < 1:
        raise ValueError("violation_count starts at 1")
    return ESCALATION_TIERS[min(violation_count, len(ESCALATION_TIERS)) - 1]


class PenaltyState(enum.Enum):
    CLEAR = "clear"
    BLOCKED = "blocked"


@dataclass
class PenaltyRecord:
    violation_count: int = 0
    blocked_until: float | None = None
    last_seen: float = 0.0

    def is_blocked(self, now: float) -> bool:
        return self.blocked_until is not None and self.blocked_until > now


@dataclass(frozen=True)
class Admission:
    allowed: bool
    remaining_block_ms: int = 0


class PenaltyTracker:

    def __init__(self, locks: StripedLock | None = None):
        self._locks = locks or StripedLock()
        self._records: dict[str, PenaltyRecord] = {}

    def on_violation(self, key: str, now: float) -> int:
        """Record a threshold crossing; returns the new block length in seconds."""
        check_key(key)
        check_now(now)
        with self._locks.for_key(key):
            record = self._records.get(key)
            if record is None:
                record = self._records[key] = PenaltyRecord(last_seen=now)
            self._observe(key, record, now)

            record.violation_count += 1
            count = record.violation_count
            duration = escalate(count)
            record.blocked_until = now + duration

        logger.info("Violation #%d for %s: blocked for %ds", count, key, duration)
        return duration

    def check_admission(self, key: str, now: float) -> Admission:
        """Deny while blocked; lift an expired block on the way through."""
        check_key(key)
        check_now(now)
        with self._locks.for_key(key):
            record = self._records.get(key)
            if record is None:
                return Admission(allowed=True)
            self._observe(key, record, now)

            if record.is_blocked(now):
                remaining = round((record.blocked_until - now) * 1000)
                return Admission(allowed=False, remaining_block_ms=remaining)

            if record.blocked_until is not None:
                record.blocked_until = None
                logger.info("Block expired for %s", key)
            return Admission(allowed=True)

    def state(self, key: str, now: float) -> PenaltyState:
        record = self._records.get(key)
        if record is not None and record.is_blocked(now):
            return PenaltyState.BLOCKED
        return PenaltyState.CLEAR

    def get(self, key: str) -> PenaltyRecord | None:
        """Copy of the record for *key*, or None."""
        with self._locks.for_key(key):
            record = self._records.get(key)
            return PenaltyRecord(**asdict(record)) if record is not None else None

    def snapshot(self) -> dict[str, dict]:
        """Copy every record, each under its key's lock."""
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

    def _observe(self, key: str, record: PenaltyRecord, now: float) -> None:
        # Stored absolute timestamps keep governing; only note the regression.
        if now < record.last_seen:
            logger.warning("Clock regression for %s: %.3f < %.3f",
                           key, now, record.last_seen)
            metrics.clock_regressions_total.labels(table="penalty").inc()
        else:
            record.last_seen = now

    def __len__(self) -> int:
        return len(self._records)
