"""
Domain error classes.

Each error carries the HTTP status it maps to. Messages are short and safe to
return to the caller; anything internal is logged instead.
"""


class DomainError(Exception):
    """Base exception for rule violations detected by the orchestrator."""
    status_code = 500

    def __init__(self, message: str = "Internal Server Error"):
        super().__init__(message)
        self.message = message


class UnauthorizedError(DomainError):
    """No authenticated session."""
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ForbiddenError(DomainError):
    """Session lacks the role or tenant required."""
    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class NotFoundError(DomainError):
    """Entity absent, or owned by another tenant."""
    status_code = 404


class ValidationError(DomainError):
    """Request is well-formed but violates a domain precondition."""
    status_code = 400


class NoPendingWorkError(ValidationError):
    """A run was requested for a configuration with nothing left to generate."""

    def __init__(self, message: str = (
        "No pending instances to process. Upload instances or check if they are already processed."
    )):
        super().__init__(message)


class ConflictError(DomainError):
    """State conflict with another in-flight operation."""
    status_code = 409


class RunAlreadyInProgressError(ConflictError):
    """A QUEUED or RUNNING generation run already exists."""
    status_code = 400

    def __init__(self, message: str = "A generation run is already in progress for this configuration"):
        super().__init__(message)


class DuplicateBracketError(ConflictError):
    """Bracket for an instance was already seeded."""

    def __init__(self, message: str = "Rating matches already exist for this instance"):
        super().__init__(message)


class WorkerRelayError(DomainError):
    """The external worker could not be reached or answered with an error."""
    status_code = 502

    def __init__(self, message: str = "Failed to trigger worker"):
        super().__init__(message)
