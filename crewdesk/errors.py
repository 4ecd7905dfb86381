"""Action errors raised by the service layer.

Services raise these instead of returning error tuples; the application
exception handler in :mod:`crewdesk.main` turns them into the failure
envelope ``{"success": false, "message": ...}`` with ``status_code``.
"""


class ActionError(Exception):
    """Base class for every error an action reports back to the caller."""

    status_code = 400
    default_message = "The action could not be completed."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(ActionError):
    """Malformed or missing input, caught before anything is persisted."""

    status_code = 400
    default_message = "Invalid data."


class PermissionDenied(ActionError):
    status_code = 403
    default_message = "You are not permitted to perform this action."


class NotAuthenticated(ActionError):
    status_code = 401
    default_message = "Not authenticated."


class NotFound(ActionError):
    status_code = 404
    default_message = "Not found."


class Conflict(ActionError):
    """Duplicate unique field or a membership clash."""

    status_code = 409
    default_message = "A record with the same data already exists."


class PersistenceError(ActionError):
    """Storage failure. The real cause is logged server-side only."""

    status_code = 500
    default_message = "The operation failed, please try again later."
