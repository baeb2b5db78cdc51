"""Domain errors raised by the TaskFlow core."""


class TaskflowError(Exception):
    """Base class for all core errors."""
    pass


class ValidationError(TaskflowError):
    """Raised when input is malformed or missing a required field."""
    pass


class InvalidTransition(ValidationError):
    """Raised when a status change targets an unrecognized status."""
    pass


class NotFound(TaskflowError):
    """Raised when a referenced project, task, or user does not exist."""
    pass


class NotAuthorized(TaskflowError):
    """Raised when the caller is not a member of the relevant project."""
    pass
