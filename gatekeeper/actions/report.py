"""Abuse reports — low allowance, trust-building.

Five reports a day is plenty for a genuine user; report floods are a
classic way to bury a target under moderation load.  A report that stays
inside the allowance earns more trust than a routine call.
"""

from gatekeeper.actions import ActionClass


class Report(ActionClass):
    id = "report"
    name = "Submit Report"
    window_seconds = 24 * 60 * 60
    max_requests = 5
    reward = 5
