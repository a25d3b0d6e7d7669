"""Uploads — storage-heavy, capped per day, small reward."""

from gatekeeper.actions import ActionClass


class Upload(ActionClass):
    id = "upload"
    name = "Upload File"
    window_seconds = 24 * 60 * 60
    max_requests = 10
    reward = 2
