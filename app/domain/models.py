"""Core domain models for service jobs, spare-part orders, and contacts.

This module defines the data structures used throughout the application:
- Job: one appliance repair request and its outcome
- PartOrder: procurement request for a component needed by a Job
- Contact: a resolvable recipient (client, technician, partner, staff)
- Actor: the caller requesting a transition
- AuditEntry: append-only record of transitions and notification outcomes
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class JobStatus(str, Enum):
    """Lifecycle states of a service job."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    WAITING_PARTS = "waiting_parts"
    CLIENT_NOT_HOME = "client_not_home"
    CLIENT_NOT_ANSWERING = "client_not_answering"
    CUSTOMER_REFUSED_REPAIR = "customer_refused_repair"
    REPAIR_FAILED = "repair_failed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_STATUSES


TERMINAL_JOB_STATUSES = frozenset(
    {
        JobStatus.COMPLETED,
        JobStatus.CANCELLED,
        JobStatus.CUSTOMER_REFUSED_REPAIR,
        JobStatus.REPAIR_FAILED,
    }
)


class WarrantyStatus(str, Enum):
    """Warranty coverage of the appliance under repair."""

    IN_WARRANTY = "in_warranty"
    OUT_OF_WARRANTY = "out_of_warranty"
    UNKNOWN = "unknown"


class PartOrderStatus(str, Enum):
    """Lifecycle states of a spare-part order."""

    REQUESTED = "requested"
    PENDING = "pending"
    ADMIN_ORDERED = "admin_ordered"
    WAITING_DELIVERY = "waiting_delivery"
    AVAILABLE = "available"
    CONSUMED = "consumed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (PartOrderStatus.CONSUMED, PartOrderStatus.CANCELLED)

    @property
    def is_entry_point(self) -> bool:
        return self in (PartOrderStatus.REQUESTED, PartOrderStatus.PENDING)


class Urgency(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Role(str, Enum):
    """Parties that act on, or are notified about, jobs and part orders."""

    ADMIN = "admin"
    TECHNICIAN = "technician"
    CLIENT = "client"
    BUSINESS_PARTNER = "business_partner"
    SUPPLIER = "supplier"
    SYSTEM = "system"


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class Actor(BaseModel):
    """Caller of a control-surface operation.

    Authentication happens upstream; by the time a request reaches the
    lifecycle services the caller is known to hold ``role``.
    """

    role: Role
    id: Optional[str] = None

    @field_validator("id")
    @classmethod
    def strip_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = str(v).strip()
        return stripped or None

    @classmethod
    def system(cls) -> "Actor":
        return cls(role=Role.SYSTEM, id="system")


class OutcomeFlags(BaseModel):
    """Outcome details recorded by the technician on the visit."""

    is_completely_fixed: Optional[bool] = None
    customer_refusal_reason: Optional[str] = None
    client_unavailable_reason: Optional[str] = None
    repair_failure_reason: Optional[str] = None


class Job(BaseModel):
    """A service request tying together a client, an appliance and a technician.

    Jobs are created by intake and afterwards only mutated through validated
    transitions (see app.lifecycle.jobs). ``completed_at`` is set iff the
    status is ``completed``.
    """

    id: Optional[int] = Field(None, description="Generated on insert")
    client_ref: str = Field(..., description="Contact directory id of the client")
    appliance_ref: str = Field(..., description="Appliance record id")
    description: str = Field("", description="Fault description from intake")
    technician_ref: Optional[str] = None
    business_partner_ref: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    warranty_status: WarrantyStatus = WarrantyStatus.UNKNOWN
    created_at: datetime
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    technician_notes: Optional[str] = None
    work_performed: Optional[str] = None
    used_parts_manifest: List[str] = Field(default_factory=list)
    cost: Optional[Decimal] = None
    outcome: OutcomeFlags = Field(default_factory=OutcomeFlags)

    @field_validator("client_ref", "appliance_ref")
    @classmethod
    def require_reference(cls, v: str) -> str:
        if not v or not str(v).strip():
            raise ValueError("Reference cannot be empty or whitespace-only")
        return str(v).strip()

    @field_validator("created_at", "scheduled_at", "completed_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return None
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class PartOrder(BaseModel):
    """Procurement request for a spare part needed by a Job."""

    id: Optional[int] = None
    service_ref: int = Field(..., description="Id of the job this part is for")
    technician_ref: Optional[str] = None
    part_name: str
    part_number: Optional[str] = None
    manufacturer: Optional[str] = Field(None, description="Appliance brand, used for supplier routing")
    quantity: int = Field(1, ge=1)
    urgency: Urgency = Urgency.NORMAL
    status: PartOrderStatus = PartOrderStatus.REQUESTED
    supplier_name: Optional[str] = None
    order_date: Optional[datetime] = None
    expected_delivery: Optional[datetime] = None
    actual_cost: Optional[Decimal] = None
    consumed_for_service_ref: Optional[int] = None
    admin_notes: Optional[str] = None
    created_at: datetime

    @field_validator("part_name")
    @classmethod
    def require_part_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("part_name cannot be empty")
        return v.strip()

    @field_validator("created_at", "order_date", "expected_delivery")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return None
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class Contact(BaseModel):
    """A resolved recipient from the contact directory."""

    role: Role
    ref_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("email", "phone")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None


class AuditEntry(BaseModel):
    """Append-only record of a transition or a notification attempt."""

    id: Optional[int] = None
    entity_kind: str
    entity_id: int
    action: str
    detail: Dict[str, Any] = Field(default_factory=dict)
    recorded_at: datetime
