"""Data access layer (repositories) for persistence operations.

Repositories encapsulate SQL against a caller-owned session and return domain
models rather than ORM models. They never commit; ``get_session()`` does that
when the caller's unit of work completes.

Status changes go through ``compare_and_set_status``, a single
``UPDATE ... WHERE id = :id AND status = :expected`` statement. A zero row
count means another writer moved the record first.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.models import AuditEntry, Contact, Job, JobStatus, PartOrder, PartOrderStatus, Role

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import AuditEntryModel, ContactModel, JobModel, PartOrderModel

logger = logging.getLogger(__name__)

# Columns rewritten on every job/part-order state change; id and created_at never change.
# used_parts_manifest is only ever extended through JobRepository.append_used_part.
JOB_MUTABLE_COLUMNS = (
    "technician_ref",
    "business_partner_ref",
    "status",
    "warranty_status",
    "scheduled_at",
    "completed_at",
    "technician_notes",
    "work_performed",
    "cost",
    "is_completely_fixed",
    "customer_refusal_reason",
    "client_unavailable_reason",
    "repair_failure_reason",
)

PART_ORDER_MUTABLE_COLUMNS = (
    "technician_ref",
    "status",
    "supplier_name",
    "order_date",
    "expected_delivery",
    "actual_cost",
    "consumed_for_service_ref",
    "admin_notes",
)


def _column_values(model: Any, columns: tuple) -> Dict[str, Any]:
    return {column: getattr(model, column) for column in columns}


class JobRepository:
    """Repository for service jobs."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, job: Job) -> Job:
        """Insert a new job and return it with its generated id.

        Raises:
            DataIntegrityError: On constraint violation
            PersistenceError: If a database error occurs
        """
        try:
            job_model = JobModel.from_domain(job.model_copy(update={"id": None}))
            self.session.add(job_model)
            self.session.flush()
            return job_model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error inserting job: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to insert job due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error inserting job: {e}", exc_info=True)
            raise PersistenceError(f"Failed to insert job: {e}") from e

    def get(self, job_id: int) -> Optional[Job]:
        """Retrieve a job by id, or None if it does not exist."""
        try:
            job_model = self.session.get(JobModel, job_id, populate_existing=True)
            return job_model.to_domain() if job_model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve job: {e}") from e

    def list_by_status(self, status: JobStatus) -> List[Job]:
        """Return all jobs in ``status``, oldest first."""
        try:
            stmt = (
                select(JobModel)
                .where(JobModel.status == status.value)
                .order_by(JobModel.created_at.asc())
            )
            return [row.to_domain() for row in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing jobs with status {status.value}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list jobs: {e}") from e

    def compare_and_set_status(self, job: Job, expected_status: JobStatus) -> bool:
        """Persist ``job`` only if the stored status still equals ``expected_status``.

        Args:
            job: Job carrying the new status and field values
            expected_status: Status the caller observed before validating

        Returns:
            True if the row was updated, False if the stored status differs
            or the job no longer exists
        """
        try:
            values = _column_values(JobModel.from_domain(job), JOB_MUTABLE_COLUMNS)
            stmt = (
                update(JobModel)
                .where(JobModel.id == job.id, JobModel.status == expected_status.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount == 1
        except SQLAlchemyError as e:
            logger.error(f"Error updating job {job.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update job: {e}") from e

    def append_used_part(self, job_id: int, part_name: str) -> Job:
        """Append a part to the job's used-parts manifest.

        Raises:
            RecordNotFoundError: If the job doesn't exist
        """
        try:
            job_model = self.session.get(JobModel, job_id, populate_existing=True)
            if job_model is None:
                raise RecordNotFoundError(f"Job with id {job_id} not found")
            # Reassign so the JSON column is marked dirty
            job_model.used_parts_manifest = list(job_model.used_parts_manifest or []) + [part_name]
            self.session.flush()
            return job_model.to_domain()
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating parts manifest for job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update parts manifest: {e}") from e

    def delete(self, job_id: int) -> None:
        """Hard-delete a job.

        Raises:
            RecordNotFoundError: If the job doesn't exist
            DataIntegrityError: If part orders still reference the job
        """
        try:
            result = self.session.execute(delete(JobModel).where(JobModel.id == job_id))
            self.session.flush()
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Job with id {job_id} not found")
        except RecordNotFoundError:
            raise
        except IntegrityError as e:
            logger.warning(f"Refusing to delete job {job_id} with dependent part orders: {e}")
            raise DataIntegrityError(
                f"Job {job_id} still has part orders and cannot be deleted"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error deleting job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete job: {e}") from e


class PartOrderRepository:
    """Repository for spare-part orders."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, order: PartOrder) -> PartOrder:
        """Insert a new part order and return it with its generated id.

        Raises:
            DataIntegrityError: If the referenced job doesn't exist
            PersistenceError: If a database error occurs
        """
        try:
            order_model = PartOrderModel.from_domain(order.model_copy(update={"id": None}))
            self.session.add(order_model)
            self.session.flush()
            return order_model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error inserting part order: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to insert part order due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error inserting part order: {e}", exc_info=True)
            raise PersistenceError(f"Failed to insert part order: {e}") from e

    def get(self, order_id: int) -> Optional[PartOrder]:
        """Retrieve a part order by id, or None if it does not exist."""
        try:
            order_model = self.session.get(PartOrderModel, order_id, populate_existing=True)
            return order_model.to_domain() if order_model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving part order {order_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve part order: {e}") from e

    def list_for_job(self, job_id: int) -> List[PartOrder]:
        """Return the job's part orders in creation order."""
        try:
            stmt = (
                select(PartOrderModel)
                .where(PartOrderModel.service_ref == job_id)
                .order_by(PartOrderModel.id.asc())
            )
            return [row.to_domain() for row in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing part orders for job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list part orders: {e}") from e

    def compare_and_set_status(self, order: PartOrder, expected_status: PartOrderStatus) -> bool:
        """Persist ``order`` only if the stored status still equals ``expected_status``."""
        try:
            values = _column_values(PartOrderModel.from_domain(order), PART_ORDER_MUTABLE_COLUMNS)
            stmt = (
                update(PartOrderModel)
                .where(
                    PartOrderModel.id == order.id,
                    PartOrderModel.status == expected_status.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount == 1
        except SQLAlchemyError as e:
            logger.error(f"Error updating part order {order.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update part order: {e}") from e


class ContactRepository:
    """Repository for the contact directory table."""

    def __init__(self, session: Session):
        self.session = session

    def upsert(self, contact: Contact) -> Contact:
        """Insert or replace the contact identified by (role, ref_id)."""
        try:
            existing = self.session.get(ContactModel, (contact.role.value, contact.ref_id))
            if existing:
                existing.name = contact.name
                existing.email = contact.email
                existing.phone = contact.phone
                self.session.flush()
                return existing.to_domain()

            contact_model = ContactModel.from_domain(contact)
            self.session.add(contact_model)
            self.session.flush()
            return contact_model.to_domain()
        except SQLAlchemyError as e:
            logger.error(f"Error upserting contact {contact.role.value}/{contact.ref_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to upsert contact: {e}") from e

    def lookup(self, role: Role, ref_id: str) -> Optional[Contact]:
        """Return the contact for (role, ref_id), or None."""
        try:
            contact_model = self.session.get(ContactModel, (role.value, str(ref_id)))
            return contact_model.to_domain() if contact_model else None
        except SQLAlchemyError as e:
            logger.error(f"Error looking up contact {role.value}/{ref_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to look up contact: {e}") from e

    def members(self, role: Role) -> List[Contact]:
        """Return every contact holding ``role``, ordered by ref_id."""
        try:
            stmt = (
                select(ContactModel)
                .where(ContactModel.role == role.value)
                .order_by(ContactModel.ref_id.asc())
            )
            return [row.to_domain() for row in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing contacts for role {role.value}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list contacts: {e}") from e


class AuditRepository:
    """Append-only access to the audit log."""

    def __init__(self, session: Session):
        self.session = session

    def append(self, entry: AuditEntry) -> AuditEntry:
        try:
            entry_model = AuditEntryModel.from_domain(entry)
            self.session.add(entry_model)
            self.session.flush()
            return entry_model.to_domain()
        except SQLAlchemyError as e:
            logger.error(f"Error appending audit entry: {e}", exc_info=True)
            raise PersistenceError(f"Failed to append audit entry: {e}") from e

    def list_for_entity(self, entity_kind: str, entity_id: int) -> List[AuditEntry]:
        """Return the entity's audit entries in insertion order."""
        try:
            stmt = (
                select(AuditEntryModel)
                .where(
                    AuditEntryModel.entity_kind == entity_kind,
                    AuditEntryModel.entity_id == entity_id,
                )
                .order_by(AuditEntryModel.id.asc())
            )
            return [row.to_domain() for row in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error reading audit log for {entity_kind} {entity_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read audit log: {e}") from e
