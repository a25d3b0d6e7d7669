"""Gate engine — the entry point every protected operation goes through.

Pure business logic, no Kafka dependency.  The service in main.py feeds
request events in and publishes the resulting decisions.

Flow for one request (GateEngine.handle):
  1. Resolve  — principal key from identity header or peer address
  2. Flag     — advisory suspicion signal, never blocks by itself
  3. Admit    — reject outright while the principal is blocked
  4. Count    — record the hit in the action's sliding window
  5. Escalate — on a crossing: next block tier + reputation penalty
  6. Reward   — otherwise the action may earn reputation

The three stores share one striped lock table, so steps 3-6 run atomically
per principal while different principals proceed in parallel.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping

from gatekeeper.actions import ActionClass
from gatekeeper import metrics
from gatekeeper.errors import check_key, check_now
from gatekeeper.locks import StripedLock, DEFAULT_STRIPES
from gatekeeper.penalties import Admission, PenaltyState, PenaltyTracker
from gatekeeper.principal import header_value, resolve_principal
from gatekeeper.reputation import ReputationBook
from gatekeeper.suspicion import classify_suspicion, suspicion_reasons
from gatekeeper.window_counter import WindowCounter

logger = logging.getLogger(__name__)

DEFAULT_VIOLATION_PENALTY = 10

# Timestamps more than this many seconds ahead of the engine clock are
# pulled back to the clock; a future hit would otherwise sit at the head of
# the window and never age out.
MAX_DRIFT_SECONDS = 5


@dataclass(frozen=True)
class ActionResult:
    threshold_exceeded: bool
    violation_count: int
    block_duration_ms: int
    reputation_score: int
    count: int = 0
    limit: int = 0
    # False when the crossing was folded into a block set by a concurrent request
    escalated: bool = False
    blocked_until: float | None = None


class GateEngine:

    def __init__(self, actions: list[ActionClass] | None = None,
                 clock: Callable[[], float] = time.time,
                 violation_penalty: int = DEFAULT_VIOLATION_PENALTY,
                 lock_stripes: int = DEFAULT_STRIPES,
                 max_drift_seconds: float | None = MAX_DRIFT_SECONDS):
        self._clock = clock
        self.max_drift_seconds = max_drift_seconds
        self.violation_penalty = violation_penalty
        self._locks = StripedLock(lock_stripes)
        self.windows = WindowCounter(actions, self._locks)
        self.penalties = PenaltyTracker(self._locks)
        self.reputation = ReputationBook(self._locks, clock)

    @property
    def actions(self) -> dict[str, ActionClass]:
        return self.windows.actions

    # ------------------------------------------------------------------
    # Request inspection
    # ------------------------------------------------------------------

    @staticmethod
    def resolve_principal(request: Mapping) -> str:
        return resolve_principal(request)

    @staticmethod
    def classify_suspicion(request: Mapping) -> bool:
        return classify_suspicion(request)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def check_admission(self, key: str, now: float | None = None) -> Admission:
        return self.penalties.check_admission(key, self._now(now))

    def evaluate_action(self, key: str, action_id: str,
                        now: float | None = None) -> ActionResult:
        """Count one admitted request and escalate if it crosses the limit.

        Callers check admission first.  A crossing seen while the key is
        already blocked (a concurrent request set the block after this one
        was admitted) is reported as exceeded but does not escalate again.
        """
        check_key(key)
        self.windows.action(action_id)
        now = self._now(now)

        with self._locks.for_key(key):
            already_blocked = self.penalties.state(key, now) is PenaltyState.BLOCKED
            check = self.windows.record_and_check(key, action_id, now)
            record = self.penalties.get(key)
            violations = record.violation_count if record else 0

            if not check.exceeded:
                return ActionResult(
                    threshold_exceeded=False,
                    violation_count=violations,
                    block_duration_ms=0,
                    reputation_score=self.reputation.read(key),
                    count=check.count,
                    limit=check.limit,
                )

            if already_blocked:
                return ActionResult(
                    threshold_exceeded=True,
                    violation_count=violations,
                    block_duration_ms=round((record.blocked_until - now) * 1000),
                    reputation_score=self.reputation.read(key),
                    count=check.count,
                    limit=check.limit,
                    blocked_until=record.blocked_until,
                )

            duration = self.penalties.on_violation(key, now)
            score = self.reputation.adjust(key, -self.violation_penalty, now)
            return ActionResult(
                threshold_exceeded=True,
                violation_count=violations + 1,
                block_duration_ms=duration * 1000,
                reputation_score=score,
                count=check.count,
                limit=check.limit,
                escalated=True,
                blocked_until=now + duration,
            )

    def adjust_reputation(self, key: str, delta: int, now: float | None = None) -> int:
        return self.reputation.adjust(key, delta, self._now(now))

    def read_reputation(self, key: str) -> int:
        return self.reputation.read(key)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def snapshot_state(self) -> dict:
        return {
            "penalties": self.penalties.snapshot(),
            "reputation": self.reputation.snapshot(),
        }

    def reset_principal(self, key: str, clear_windows: bool = False) -> bool:
        """Drop the penalty and reputation records for *key*.

        Window counts survive unless *clear_windows* is set, so a principal
        who is still over an allowance crosses it again on the next call.
        Returns True if anything was removed.
        """
        check_key(key)
        with self._locks.for_key(key):
            cleared = self.penalties.reset(key)
            cleared = self.reputation.reset(key) or cleared
            if clear_windows:
                self.windows.reset(key)
        logger.info("Reset principal %s (windows %s)",
                    key, "cleared" if clear_windows else "kept")
        return cleared

    # ------------------------------------------------------------------
    # Full request flow
    # ------------------------------------------------------------------

    def handle(self, request: Mapping, action_id: str,
               now: float | None = None) -> dict:
        """Run one protected request end to end and return a decision dict.

        status is one of:
          allowed       the action may proceed
          blocked       rejected by the admission gate, nothing counted
          rate_limited  this request crossed the limit and was rejected
        """
        action = self.windows.action(action_id)
        now = self._now(now)
        key = resolve_principal(request)
        reasons = suspicion_reasons(request)

        decision = {
            "principal": key,
            "action": action.id,
            "timestamp": now,
            "suspicious": bool(reasons),
            "suspicion_reasons": reasons,
            "accept_language": str(header_value(request, "accept-language") or "en"),
        }

        with self._locks.for_key(key):
            admission = self.check_admission(key, now)
            if not admission.allowed:
                remaining_ms = admission.remaining_block_ms
                record = self.penalties.get(key)
                decision.update(
                    status="blocked",
                    limit=action.max_requests,
                    violations=record.violation_count,
                    reputation=self.reputation.read(key),
                    **_block_fields(now, remaining_ms),
                )
                return decision

            result = self.evaluate_action(key, action.id, now)
            if result.threshold_exceeded:
                remaining_ms = round((result.blocked_until - now) * 1000)
                decision.update(
                    status="rate_limited",
                    escalated=result.escalated,
                    limit=result.limit,
                    violations=result.violation_count,
                    block_duration_seconds=result.block_duration_ms / 1000,
                    reputation=result.reputation_score,
                    **_block_fields(now, remaining_ms),
                )
                return decision

            score = result.reputation_score
            if action.reward:
                score = self.reputation.adjust(key, action.reward, now)
            decision.update(
                status="allowed",
                count=result.count,
                limit=result.limit,
                reputation=score,
            )
        return decision

    def _now(self, now: float | None) -> float:
        """Resolve an injected time: validated, and clamped if too far ahead."""
        if now is None:
            return self._clock()
        check_now(now)
        if self.max_drift_seconds is not None:
            current = self._clock()
            if now > current + self.max_drift_seconds:
                logger.warning("Timestamp %.3f is %.1fs ahead of the clock; using %.3f",
                               now, now - current, current)
                metrics.future_timestamps_total.inc()
                return current
        return now


def _block_fields(now: float, remaining_ms: int) -> dict:
    unblock_at = now + remaining_ms / 1000
    return {
        "retry_after_seconds": round(remaining_ms / 1000),
        "blocked_for_minutes": round(remaining_ms / 60000),
        "unblock_time": datetime.fromtimestamp(unblock_at, tz=timezone.utc).isoformat(),
    }
