"""
Error taxonomy for the pick'em services.

Every service failure is raised as a PickemError subclass. Each one carries a
machine-readable ``kind`` and the HTTP status the API reports it with, so the
same error means the same thing from the CLI, the scheduler and the API.
"""


class PickemError(Exception):
    """Base class for errors scoped to a single request"""

    kind = "error"
    status_code = 400

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        data = {"success": False, "error": self.message, "kind": self.kind}
        if self.details:
            data["details"] = self.details
        return data


class ValidationError(PickemError):
    """Missing or malformed input"""

    kind = "validation_error"
    status_code = 400


class NotFound(PickemError):
    """Referenced season, week, game, league or user does not exist"""

    kind = "not_found"
    status_code = 404


class PicksLocked(PickemError):
    """Pick submitted after the game left the scheduled state"""

    kind = "picks_locked"
    status_code = 409


class InvalidTransition(PickemError):
    """Game status update would move the status backward"""

    kind = "invalid_transition"
    status_code = 409


class Conflict(PickemError):
    """Uniqueness violation that an upsert could not resolve"""

    kind = "conflict"
    status_code = 409


class UpstreamUnavailable(PickemError):
    """The result feed failed or timed out"""

    kind = "upstream_unavailable"
    status_code = 503
