# Protected action classes as Python classes, one per file.
#
# Each class carries its own allowance (max_requests per window_seconds)
# and the reputation reward a successful call earns.  Deployments that
# want different numbers without a code change load the same shape from
# YAML (see loader.py).


class ActionClass:
    """Base protected action.  Subclass and set the class attributes."""

    id: str
    name: str
    window_seconds: int
    max_requests: int
    reward: int = 0  # reputation earned by a successful, in-limit call

    def limit(self) -> str:
        """Human form of the allowance, e.g. '5/86400s'."""
        return f"{self.max_requests}/{self.window_seconds}s"

    def __repr__(self):
        return f"<{type(self).__name__} {self.id} {self.limit()} reward={self.reward}>"


from gatekeeper.actions.report import Report
from gatekeeper.actions.browse import Browse
from gatekeeper.actions.upload import Upload

ALL_ACTIONS = [Report(), Browse(), Upload()]
