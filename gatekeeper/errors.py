"""Errors raised by the gatekeeper core.

Blocked principals and threshold crossings are normal outcomes and are
reported in result objects.  Only caller or configuration mistakes raise.
"""

import math


class GatekeeperError(Exception):
    """Base class for all gatekeeper errors."""


class InvalidKey(GatekeeperError, ValueError):
    """A principal key was empty or not a string."""


class InvalidTimestamp(GatekeeperError, ValueError):
    """A supplied time was not a finite, non-negative epoch timestamp."""


class UnknownActionClass(GatekeeperError, LookupError):
    """Evaluation was requested for an action class with no configured limit."""

    def __init__(self, action):
        self.action = action
        super().__init__(f"No limit configured for action class '{action}'")


def check_key(key) -> str:
    """Return *key* unchanged, or raise InvalidKey if it is unusable."""
    if not isinstance(key, str) or not key.strip():
        raise InvalidKey(f"Unusable principal key: {key!r}")
    return key


def check_now(now) -> float:
    """Return *now* unchanged, or raise InvalidTimestamp.

    NaN never compares below a cutoff and infinity never expires, so either
    would pin a principal's window or block forever.
    """
    if isinstance(now, bool) or not isinstance(now, (int, float)):
        raise InvalidTimestamp(f"Timestamp must be a number: {now!r}")
    if not math.isfinite(now) or now < 0:
        raise InvalidTimestamp(f"Unusable timestamp: {now!r}")
    return now
