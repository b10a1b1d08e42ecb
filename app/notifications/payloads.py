"""Template data for lifecycle notifications.

Templates render with StrictUndefined, so the context always carries every
key below; absent values are empty strings.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from app.domain.models import Contact, JobStatus, PartOrderStatus, WarrantyStatus
from app.lifecycle.events import LifecycleEvent

DISPLAY_FORMAT = "%d.%m.%Y %H:%M"

JOB_STATUS_LABELS = {
    JobStatus.PENDING: "pending",
    JobStatus.ASSIGNED: "technician assigned",
    JobStatus.SCHEDULED: "scheduled",
    JobStatus.IN_PROGRESS: "in progress",
    JobStatus.WAITING_PARTS: "waiting for parts",
    JobStatus.CLIENT_NOT_HOME: "client not at home",
    JobStatus.CLIENT_NOT_ANSWERING: "client not answering",
    JobStatus.CUSTOMER_REFUSED_REPAIR: "repair refused by customer",
    JobStatus.REPAIR_FAILED: "repair failed",
    JobStatus.COMPLETED: "completed",
    JobStatus.CANCELLED: "cancelled",
}

PART_STATUS_LABELS = {
    PartOrderStatus.REQUESTED: "requested by technician",
    PartOrderStatus.PENDING: "pending order",
    PartOrderStatus.ADMIN_ORDERED: "ordered from supplier",
    PartOrderStatus.WAITING_DELIVERY: "waiting for delivery",
    PartOrderStatus.AVAILABLE: "available for pickup",
    PartOrderStatus.CONSUMED: "installed",
    PartOrderStatus.CANCELLED: "cancelled",
}

WARRANTY_LABELS = {
    WarrantyStatus.IN_WARRANTY: "in warranty",
    WarrantyStatus.OUT_OF_WARRANTY: "out of warranty",
    WarrantyStatus.UNKNOWN: "unknown",
}


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime(DISPLAY_FORMAT)
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    return str(value)


def _job_status_label(value: Optional[str]) -> str:
    if not value:
        return ""
    try:
        return JOB_STATUS_LABELS[JobStatus(value)]
    except ValueError:
        return value


def build_message_data(event: LifecycleEvent, recipient: Contact) -> Dict[str, Any]:
    """Flatten ``event`` and ``recipient`` into the template context."""
    job = event.job
    order = event.part_order
    reason = event.data.get("reason")
    previous_label = ""
    if event.entity_kind == "job":
        reason = (
            reason
            or job.outcome.customer_refusal_reason
            or job.outcome.repair_failure_reason
            or job.outcome.client_unavailable_reason
        )
        previous_label = _job_status_label(event.previous_status)

    supplier_name = ""
    if order is not None:
        supplier_name = order.supplier_name or ""
    if event.supplier is not None and event.supplier.name:
        supplier_name = event.supplier.name

    return {
        "event_type": event.event_type.value,
        "recipient_name": recipient.name,
        "recipient_role": recipient.role.value,
        "actor_role": event.actor.role.value,
        "actor_id": _text(event.actor.id),
        "job_id": job.id,
        "job_status": job.status.value,
        "job_status_label": JOB_STATUS_LABELS[job.status],
        "previous_status_label": previous_label,
        "client_ref": job.client_ref,
        "appliance_ref": job.appliance_ref,
        "description": job.description,
        "technician_ref": _text(job.technician_ref),
        "business_partner_ref": _text(job.business_partner_ref),
        "warranty_label": WARRANTY_LABELS[job.warranty_status],
        "scheduled_at": _text(job.scheduled_at),
        "completed_at": _text(job.completed_at),
        "technician_notes": _text(job.technician_notes),
        "work_performed": _text(job.work_performed),
        "used_parts": ", ".join(job.used_parts_manifest),
        "cost": _text(job.cost),
        "reason": _text(reason),
        "part_order_id": order.id if order else "",
        "part_name": order.part_name if order else "",
        "part_number": _text(order.part_number) if order else "",
        "manufacturer": _text(order.manufacturer) if order else "",
        "quantity": order.quantity if order else "",
        "urgency": order.urgency.value if order else "",
        "part_status_label": PART_STATUS_LABELS[order.status] if order else "",
        "supplier_name": supplier_name,
        "expected_delivery": _text(order.expected_delivery) if order else "",
        "actual_cost": _text(order.actual_cost) if order else "",
    }
