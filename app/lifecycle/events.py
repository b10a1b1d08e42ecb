"""Lifecycle events raised after a committed transition."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from app.domain.models import Actor, Job, JobStatus, PartOrder, PartOrderStatus
from app.utils.timestamps import utc_now

from .suppliers import SupplierMatch


class EventType(str, Enum):
    JOB_CREATED = "job.created"
    JOB_ASSIGNED = "job.assigned"
    JOB_SCHEDULED = "job.scheduled"
    JOB_STARTED = "job.started"
    JOB_RESUMED = "job.resumed"
    JOB_WAITING_PARTS = "job.waiting_parts"
    JOB_CLIENT_NOT_HOME = "job.client_not_home"
    JOB_CLIENT_NOT_ANSWERING = "job.client_not_answering"
    JOB_REPAIR_REFUSED = "job.repair_refused"
    JOB_COMPLETED = "job.completed"
    JOB_REPAIR_FAILED = "job.repair_failed"
    JOB_CANCELLED = "job.cancelled"
    PART_REQUESTED = "part.requested"
    PART_ADMIN_ORDERED = "part.admin_ordered"
    PART_WAITING_DELIVERY = "part.waiting_delivery"
    PART_AVAILABLE = "part.available"
    PART_CONSUMED = "part.consumed"
    PART_CANCELLED = "part.cancelled"


JOB_EVENTS = {
    JobStatus.ASSIGNED: EventType.JOB_ASSIGNED,
    JobStatus.SCHEDULED: EventType.JOB_SCHEDULED,
    JobStatus.IN_PROGRESS: EventType.JOB_STARTED,
    JobStatus.WAITING_PARTS: EventType.JOB_WAITING_PARTS,
    JobStatus.CLIENT_NOT_HOME: EventType.JOB_CLIENT_NOT_HOME,
    JobStatus.CLIENT_NOT_ANSWERING: EventType.JOB_CLIENT_NOT_ANSWERING,
    JobStatus.CUSTOMER_REFUSED_REPAIR: EventType.JOB_REPAIR_REFUSED,
    JobStatus.COMPLETED: EventType.JOB_COMPLETED,
    JobStatus.REPAIR_FAILED: EventType.JOB_REPAIR_FAILED,
    JobStatus.CANCELLED: EventType.JOB_CANCELLED,
}

PART_EVENTS = {
    PartOrderStatus.REQUESTED: EventType.PART_REQUESTED,
    PartOrderStatus.PENDING: EventType.PART_REQUESTED,
    PartOrderStatus.ADMIN_ORDERED: EventType.PART_ADMIN_ORDERED,
    PartOrderStatus.WAITING_DELIVERY: EventType.PART_WAITING_DELIVERY,
    PartOrderStatus.AVAILABLE: EventType.PART_AVAILABLE,
    PartOrderStatus.CONSUMED: EventType.PART_CONSUMED,
    PartOrderStatus.CANCELLED: EventType.PART_CANCELLED,
}


def job_event_type(previous: Optional[JobStatus], target: JobStatus) -> EventType:
    """Event raised when a job enters ``target`` from ``previous``."""
    if previous is None:
        return EventType.JOB_CREATED
    if target == JobStatus.IN_PROGRESS and previous == JobStatus.WAITING_PARTS:
        return EventType.JOB_RESUMED
    return JOB_EVENTS[target]


@dataclass(frozen=True)
class LifecycleEvent:
    """Snapshot of a committed state change, handed to the notification dispatcher.

    Attributes:
        event_type: What happened
        entity_kind: "job" or "part_order"
        entity_id: Id of the entity that changed
        job: The job after the change (for part events, the order's job)
        actor: Who requested the change
        previous_status: Status before the change (None on creation)
        part_order: The part order after the change, for part events
        supplier: Supplier routing result, when the order was placed with a supplier
        data: Free-form extras such as the reason given
    """

    event_type: EventType
    entity_kind: str
    entity_id: int
    job: Job
    actor: Actor
    previous_status: Optional[str] = None
    part_order: Optional[PartOrder] = None
    supplier: Optional[SupplierMatch] = None
    data: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass
class TransitionResult:
    """What a lifecycle operation did.

    ``event`` is None for an idempotent re-entry. ``ticket`` is whatever the
    event publisher returned. ``linked`` holds follow-up transitions of other
    entities, e.g. the job moved to waiting_parts by a new part order.
    """

    entity: Any
    event: Optional[LifecycleEvent] = None
    ticket: Any = None
    linked: List["TransitionResult"] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.event is not None
