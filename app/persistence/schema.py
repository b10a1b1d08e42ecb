"""Database schema definition and ORM models.

This module defines SQLAlchemy ORM models for the database schema and provides
conversion methods between ORM models and domain models.
"""

import logging

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from app.domain.models import (
    AuditEntry,
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
from app.utils.timestamps import format_money, format_timestamp, parse_money, parse_timestamp

logger = logging.getLogger(__name__)

Base = declarative_base()


class JobModel(Base):
    """ORM model for the jobs table (service requests)."""

    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)

    client_ref = Column(String(64), nullable=False)
    appliance_ref = Column(String(64), nullable=False)
    description = Column(Text, nullable=False, default="")
    technician_ref = Column(String(64), nullable=True)
    business_partner_ref = Column(String(64), nullable=True)

    status = Column(String(32), nullable=False, default=JobStatus.PENDING.value)
    warranty_status = Column(String(32), nullable=False, default=WarrantyStatus.UNKNOWN.value)

    # Timestamps (stored as ISO 8601 strings)
    created_at = Column(String(50), nullable=False)
    scheduled_at = Column(String(50), nullable=True)
    completed_at = Column(String(50), nullable=True)

    technician_notes = Column(Text, nullable=True)
    work_performed = Column(Text, nullable=True)
    used_parts_manifest = Column(JSON, nullable=False, default=list)
    cost = Column(String(32), nullable=True)

    # Outcome flags
    is_completely_fixed = Column(Boolean, nullable=True)
    customer_refusal_reason = Column(Text, nullable=True)
    client_unavailable_reason = Column(Text, nullable=True)
    repair_failure_reason = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_jobs_status", "status"),
        Index("idx_jobs_technician", "technician_ref"),
        Index("idx_jobs_client", "client_ref"),
    )

    def to_domain(self) -> Job:
        return Job(
            id=self.id,
            client_ref=self.client_ref,
            appliance_ref=self.appliance_ref,
            description=self.description or "",
            technician_ref=self.technician_ref,
            business_partner_ref=self.business_partner_ref,
            status=JobStatus(self.status),
            warranty_status=WarrantyStatus(self.warranty_status),
            created_at=parse_timestamp(self.created_at),
            scheduled_at=parse_timestamp(self.scheduled_at),
            completed_at=parse_timestamp(self.completed_at),
            technician_notes=self.technician_notes,
            work_performed=self.work_performed,
            used_parts_manifest=list(self.used_parts_manifest or []),
            cost=parse_money(self.cost),
            outcome=OutcomeFlags(
                is_completely_fixed=self.is_completely_fixed,
                customer_refusal_reason=self.customer_refusal_reason,
                client_unavailable_reason=self.client_unavailable_reason,
                repair_failure_reason=self.repair_failure_reason,
            ),
        )

    @classmethod
    def from_domain(cls, job: Job) -> "JobModel":
        return cls(
            id=job.id,
            client_ref=job.client_ref,
            appliance_ref=job.appliance_ref,
            description=job.description,
            technician_ref=job.technician_ref,
            business_partner_ref=job.business_partner_ref,
            status=job.status.value,
            warranty_status=job.warranty_status.value,
            created_at=format_timestamp(job.created_at),
            scheduled_at=format_timestamp(job.scheduled_at),
            completed_at=format_timestamp(job.completed_at),
            technician_notes=job.technician_notes,
            work_performed=job.work_performed,
            used_parts_manifest=list(job.used_parts_manifest),
            cost=format_money(job.cost),
            is_completely_fixed=job.outcome.is_completely_fixed,
            customer_refusal_reason=job.outcome.customer_refusal_reason,
            client_unavailable_reason=job.outcome.client_unavailable_reason,
            repair_failure_reason=job.outcome.repair_failure_reason,
        )


class PartOrderModel(Base):
    """ORM model for the part_orders table.

    ``service_ref`` is a foreign key, so a job cannot be deleted while part
    orders still reference it.
    """

    __tablename__ = "part_orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_ref = Column(Integer, ForeignKey("jobs.id", ondelete="RESTRICT"), nullable=False)
    technician_ref = Column(String(64), nullable=True)

    part_name = Column(String(255), nullable=False)
    part_number = Column(String(128), nullable=True)
    manufacturer = Column(String(128), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    urgency = Column(String(16), nullable=False, default=Urgency.NORMAL.value)
    status = Column(String(32), nullable=False, default=PartOrderStatus.REQUESTED.value)

    supplier_name = Column(String(255), nullable=True)
    order_date = Column(String(50), nullable=True)
    expected_delivery = Column(String(50), nullable=True)
    actual_cost = Column(String(32), nullable=True)
    consumed_for_service_ref = Column(Integer, nullable=True)
    admin_notes = Column(Text, nullable=True)
    created_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_part_orders_service", "service_ref"),
        Index("idx_part_orders_status", "status"),
    )

    def to_domain(self) -> PartOrder:
        return PartOrder(
            id=self.id,
            service_ref=self.service_ref,
            technician_ref=self.technician_ref,
            part_name=self.part_name,
            part_number=self.part_number,
            manufacturer=self.manufacturer,
            quantity=self.quantity,
            urgency=Urgency(self.urgency),
            status=PartOrderStatus(self.status),
            supplier_name=self.supplier_name,
            order_date=parse_timestamp(self.order_date),
            expected_delivery=parse_timestamp(self.expected_delivery),
            actual_cost=parse_money(self.actual_cost),
            consumed_for_service_ref=self.consumed_for_service_ref,
            admin_notes=self.admin_notes,
            created_at=parse_timestamp(self.created_at),
        )

    @classmethod
    def from_domain(cls, order: PartOrder) -> "PartOrderModel":
        return cls(
            id=order.id,
            service_ref=order.service_ref,
            technician_ref=order.technician_ref,
            part_name=order.part_name,
            part_number=order.part_number,
            manufacturer=order.manufacturer,
            quantity=order.quantity,
            urgency=order.urgency.value,
            status=order.status.value,
            supplier_name=order.supplier_name,
            order_date=format_timestamp(order.order_date),
            expected_delivery=format_timestamp(order.expected_delivery),
            actual_cost=format_money(order.actual_cost),
            consumed_for_service_ref=order.consumed_for_service_ref,
            admin_notes=order.admin_notes,
            created_at=format_timestamp(order.created_at),
        )


class ContactModel(Base):
    """ORM model for the contacts table backing the contact directory."""

    __tablename__ = "contacts"

    role = Column(String(32), primary_key=True, nullable=False)
    ref_id = Column(String(64), primary_key=True, nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(320), nullable=True)
    phone = Column(String(32), nullable=True)

    def to_domain(self) -> Contact:
        return Contact(
            role=Role(self.role),
            ref_id=self.ref_id,
            name=self.name,
            email=self.email,
            phone=self.phone,
        )

    @classmethod
    def from_domain(cls, contact: Contact) -> "ContactModel":
        return cls(
            role=contact.role.value,
            ref_id=contact.ref_id,
            name=contact.name,
            email=contact.email,
            phone=contact.phone,
        )


class AuditEntryModel(Base):
    """ORM model for the append-only audit_log table."""

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_kind = Column(String(32), nullable=False)
    entity_id = Column(Integer, nullable=False)
    action = Column(String(32), nullable=False)
    detail = Column(JSON, nullable=False, default=dict)
    recorded_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_audit_entity", "entity_kind", "entity_id"),
        Index("idx_audit_recorded_at", "recorded_at"),
    )

    def to_domain(self) -> AuditEntry:
        return AuditEntry(
            id=self.id,
            entity_kind=self.entity_kind,
            entity_id=self.entity_id,
            action=self.action,
            detail=dict(self.detail or {}),
            recorded_at=parse_timestamp(self.recorded_at),
        )

    @classmethod
    def from_domain(cls, entry: AuditEntry) -> "AuditEntryModel":
        return cls(
            entity_kind=entry.entity_kind,
            entity_id=entry.entity_id,
            action=entry.action,
            detail=dict(entry.detail),
            recorded_at=format_timestamp(entry.recorded_at),
        )


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
