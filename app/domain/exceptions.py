"""Domain exceptions raised by the lifecycle services.

These are returned synchronously to the caller and always abort the
requested transition before anything is persisted.
"""

from typing import Optional


class DomainError(Exception):
    """Base exception for all lifecycle errors."""

    pass


class ValidationError(DomainError):
    """Raised when request input is malformed (wrong shape, missing actor, bad values)."""

    pass


class PreconditionError(DomainError):
    """Raised when a transition is illegal from the current status or lacks a required field."""

    def __init__(self, message: str, current_status: Optional[str] = None, target_status: Optional[str] = None):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(message)


class NotFoundError(DomainError):
    """Raised when a job or part order id does not exist."""

    pass


class PermissionDeniedError(DomainError):
    """Raised when the actor's role or ownership does not allow the operation."""

    pass


class ConflictError(DomainError):
    """Raised when the persisted status no longer matches the status the caller observed."""

    def __init__(self, message: str, expected_status: Optional[str] = None, actual_status: Optional[str] = None):
        self.expected_status = expected_status
        self.actual_status = actual_status
        super().__init__(message)
