"""Persistence layer for jobs, part orders, contacts, and the audit log.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes
    - JobRepository: jobs, including compare-and-set status updates
    - PartOrderRepository: spare-part orders
    - ContactRepository: contact directory rows
    - AuditRepository: append-only audit log

Example usage:
    >>> from app.persistence import init_database, get_session, JobRepository
    >>> init_database("sqlite:///./data/field_service.db")
    >>> with get_session() as session:
    ...     job = JobRepository(session).get(42)
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import AuditRepository, ContactRepository, JobRepository, PartOrderRepository

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "JobRepository",
    "PartOrderRepository",
    "ContactRepository",
    "AuditRepository",
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
