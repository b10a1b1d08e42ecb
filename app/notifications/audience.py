"""Who hears about which lifecycle event, and with which template.

AUDIENCE_TABLE is closed over EventType: every event type has an entry, and
each entry lists the roles to notify. A rule's condition, when present, must
hold for the event (e.g. the job has a business partner) for the rule to
apply. Channels are not part of the table; every channel the recipient has
an address for is attempted.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from app.domain.models import Role
from app.lifecycle.events import EventType, LifecycleEvent

Condition = Callable[[LifecycleEvent], bool]


@dataclass(frozen=True)
class AudienceRule:
    role: Role
    template_id: str
    condition: Optional[Condition] = None

    def applies_to(self, event: LifecycleEvent) -> bool:
        return self.condition is None or bool(self.condition(event))


def has_partner(event: LifecycleEvent) -> bool:
    return bool(event.job.business_partner_ref)


def has_technician(event: LifecycleEvent) -> bool:
    if event.part_order is not None and event.part_order.technician_ref:
        return True
    return bool(event.job.technician_ref)


ADMIN = AudienceRule(Role.ADMIN, "job_status_admin")
PARTNER = AudienceRule(Role.BUSINESS_PARTNER, "job_status_partner", has_partner)
PART_ADMIN = AudienceRule(Role.ADMIN, "part_status_admin")
PART_TECHNICIAN = AudienceRule(Role.TECHNICIAN, "part_status_technician", has_technician)


AUDIENCE_TABLE: Dict[EventType, List[AudienceRule]] = {
    EventType.JOB_CREATED: [
        AudienceRule(Role.CLIENT, "job_created"),
        ADMIN,
        PARTNER,
    ],
    EventType.JOB_ASSIGNED: [
        AudienceRule(Role.CLIENT, "job_assigned"),
        AudienceRule(Role.TECHNICIAN, "technician_job_assigned", has_technician),
        ADMIN,
        PARTNER,
    ],
    EventType.JOB_SCHEDULED: [
        AudienceRule(Role.CLIENT, "job_scheduled"),
        AudienceRule(Role.TECHNICIAN, "job_scheduled", has_technician),
        PARTNER,
    ],
    EventType.JOB_STARTED: [
        AudienceRule(Role.CLIENT, "job_started"),
        ADMIN,
        PARTNER,
    ],
    EventType.JOB_RESUMED: [
        AudienceRule(Role.CLIENT, "job_resumed"),
        AudienceRule(Role.TECHNICIAN, "job_resumed", has_technician),
        ADMIN,
    ],
    EventType.JOB_WAITING_PARTS: [
        AudienceRule(Role.CLIENT, "job_waiting_parts"),
        ADMIN,
        PARTNER,
    ],
    EventType.JOB_CLIENT_NOT_HOME: [
        AudienceRule(Role.CLIENT, "client_unavailable"),
        ADMIN,
        PARTNER,
    ],
    EventType.JOB_CLIENT_NOT_ANSWERING: [
        AudienceRule(Role.CLIENT, "client_unavailable"),
        ADMIN,
        PARTNER,
    ],
    EventType.JOB_REPAIR_REFUSED: [
        AudienceRule(Role.CLIENT, "repair_refused"),
        ADMIN,
        PARTNER,
    ],
    EventType.JOB_COMPLETED: [
        AudienceRule(Role.CLIENT, "job_completed"),
        ADMIN,
        AudienceRule(Role.BUSINESS_PARTNER, "job_completed", has_partner),
    ],
    EventType.JOB_REPAIR_FAILED: [
        AudienceRule(Role.CLIENT, "repair_failed"),
        ADMIN,
        PARTNER,
    ],
    EventType.JOB_CANCELLED: [
        AudienceRule(Role.CLIENT, "job_cancelled"),
        AudienceRule(Role.TECHNICIAN, "job_cancelled", has_technician),
        ADMIN,
        PARTNER,
    ],
    EventType.PART_REQUESTED: [
        PART_ADMIN,
    ],
    EventType.PART_ADMIN_ORDERED: [
        AudienceRule(Role.SUPPLIER, "supplier_part_order"),
        PART_TECHNICIAN,
        PART_ADMIN,
    ],
    EventType.PART_WAITING_DELIVERY: [
        PART_TECHNICIAN,
        PART_ADMIN,
    ],
    EventType.PART_AVAILABLE: [
        PART_TECHNICIAN,
        PART_ADMIN,
    ],
    EventType.PART_CONSUMED: [
        PART_ADMIN,
    ],
    EventType.PART_CANCELLED: [
        PART_TECHNICIAN,
        PART_ADMIN,
    ],
}


def audience_for(event: LifecycleEvent) -> List[AudienceRule]:
    """Rules that apply to ``event``, in table order."""
    return [rule for rule in AUDIENCE_TABLE[event.event_type] if rule.applies_to(event)]
