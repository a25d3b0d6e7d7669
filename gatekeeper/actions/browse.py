"""Browsing — high-volume routine reads.  No reputation reward."""

from gatekeeper.actions import ActionClass


class Browse(ActionClass):
    id = "browse"
    name = "Browse"
    window_seconds = 60 * 60
    max_requests = 100
