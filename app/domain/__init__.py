"""Domain models and exceptions for jobs, part orders, and contacts."""

from .exceptions import (
    ConflictError,
    DomainError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
    ValidationError,
)
from .models import (
    Actor,
    AuditEntry,
    Channel,
    Contact,
    Job,
    JobStatus,
    OutcomeFlags,
    PartOrder,
    PartOrderStatus,
    Role,
    Urgency,
    WarrantyStatus,
)

__all__ = [
    "Actor",
    "AuditEntry",
    "Channel",
    "Contact",
    "Job",
    "JobStatus",
    "OutcomeFlags",
    "PartOrder",
    "PartOrderStatus",
    "Role",
    "Urgency",
    "WarrantyStatus",
    "DomainError",
    "ValidationError",
    "PreconditionError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
]
