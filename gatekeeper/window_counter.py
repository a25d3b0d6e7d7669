"""Per-principal, per-action request counting.

State: dict[action_id, dict[key, SlidingWindow]].  Windows are created on
first hit with that action's duration and are never evicted.
"""

import logging
from dataclasses import dataclass

from gatekeeper import metrics
from gatekeeper.actions import ActionClass, ALL_ACTIONS
from gatekeeper.errors import UnknownActionClass, check_key, check_now
from gatekeeper.locks import StripedLock
from gatekeeper.sliding_window import SlidingWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowCheck:
    count: int      # hits in the window, this one included
    limit: int
    exceeded: bool


class WindowCounter:

    def __init__(self, actions: list[ActionClass] | None = None,
                 locks: StripedLock | None = None):
        actions = ALL_ACTIONS if actions is None else actions
        self.actions: dict[str, ActionClass] = {a.id: a for a in actions}
        self._locks = locks or StripedLock()
        self._state: dict[str, dict[str, SlidingWindow]] = {
            action_id: {} for action_id in self.actions
        }

    def action(self, action_id: str) -> ActionClass:
        try:
            return self.actions[action_id]
        except (KeyError, TypeError):
            raise UnknownActionClass(action_id) from None

    def record_and_check(self, key: str, action_id: str, now: float) -> WindowCheck:
        """Count this request and report whether it crossed the limit."""
        check_key(key)
        check_now(now)
        action = self.action(action_id)
        windows = self._state[action.id]

        with self._locks.for_key(key):
            window = windows.get(key)
            if window is None:
                window = windows[key] = SlidingWindow(action.window_seconds)

            latest = window.latest
            if latest is not None and now < latest:
                logger.warning("Clock regression for %s/%s: %.3f < %.3f",
                               key, action.id, now, latest)
                metrics.clock_regressions_total.labels(table="window").inc()

            count = window.add(now)

        return WindowCheck(
            count=count,
            limit=action.max_requests,
            exceeded=count > action.max_requests,
        )

    def count(self, key: str, action_id: str, now: float) -> int:
        """Hits currently in the window, without recording one."""
        action = self.action(action_id)
        with self._locks.for_key(key):
            window = self._state[action.id].get(key)
            return window.count(now) if window is not None else 0

    def reset(self, key: str) -> None:
        """Forget every window held for *key*."""
        with self._locks.for_key(key):
            for windows in self._state.values():
                windows.pop(key, None)
