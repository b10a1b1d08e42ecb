"""Transition tables for jobs and part orders.

Each entry is keyed by (from, to) and names the roles allowed to request the
transition and the payload fields it requires. Pairs that are not in a table
are rejected with PreconditionError; re-applying the current status is a
no-op handled by the services, open to the roles from reentry_roles().
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Tuple

from app.domain.models import JobStatus, PartOrderStatus, Role, TERMINAL_JOB_STATUSES


@dataclass(frozen=True)
class TransitionRule:
    actors: FrozenSet[Role]
    requires: Tuple[str, ...] = ()


STAFF = frozenset({Role.ADMIN, Role.TECHNICIAN})
STAFF_AND_SYSTEM = frozenset({Role.ADMIN, Role.TECHNICIAN, Role.SYSTEM})
ADMIN_ONLY = frozenset({Role.ADMIN})


def _job_table() -> Dict[Tuple[JobStatus, JobStatus], TransitionRule]:
    table: Dict[Tuple[JobStatus, JobStatus], TransitionRule] = {
        (JobStatus.PENDING, JobStatus.ASSIGNED): TransitionRule(ADMIN_ONLY, ("technician_ref",)),
        (JobStatus.IN_PROGRESS, JobStatus.WAITING_PARTS): TransitionRule(STAFF_AND_SYSTEM),
        (JobStatus.WAITING_PARTS, JobStatus.IN_PROGRESS): TransitionRule(STAFF_AND_SYSTEM),
        (JobStatus.IN_PROGRESS, JobStatus.COMPLETED): TransitionRule(
            STAFF, ("technician_notes", "work_performed")
        ),
        (JobStatus.IN_PROGRESS, JobStatus.REPAIR_FAILED): TransitionRule(STAFF, ("reason",)),
    }

    for source in (JobStatus.PENDING, JobStatus.ASSIGNED):
        table[(source, JobStatus.SCHEDULED)] = TransitionRule(STAFF, ("scheduled_at",))

    for source in (JobStatus.PENDING, JobStatus.ASSIGNED, JobStatus.SCHEDULED):
        table[(source, JobStatus.IN_PROGRESS)] = TransitionRule(STAFF)

    for source in (JobStatus.CLIENT_NOT_HOME, JobStatus.CLIENT_NOT_ANSWERING):
        table[(source, JobStatus.SCHEDULED)] = TransitionRule(STAFF, ("scheduled_at",))
        table[(source, JobStatus.IN_PROGRESS)] = TransitionRule(STAFF)

    for source in (JobStatus.SCHEDULED, JobStatus.IN_PROGRESS):
        for target in (JobStatus.CLIENT_NOT_HOME, JobStatus.CLIENT_NOT_ANSWERING):
            table[(source, target)] = TransitionRule(STAFF, ("reason",))

    for source in (JobStatus.IN_PROGRESS, JobStatus.WAITING_PARTS):
        table[(source, JobStatus.CUSTOMER_REFUSED_REPAIR)] = TransitionRule(STAFF, ("reason",))

    # Partners may cancel too, but only their own pending jobs (checked by the service)
    for source in JobStatus:
        if source not in TERMINAL_JOB_STATUSES and source != JobStatus.CANCELLED:
            table[(source, JobStatus.CANCELLED)] = TransitionRule(
                frozenset({Role.ADMIN, Role.BUSINESS_PARTNER})
            )

    return table


def _part_order_table() -> Dict[Tuple[PartOrderStatus, PartOrderStatus], TransitionRule]:
    table: Dict[Tuple[PartOrderStatus, PartOrderStatus], TransitionRule] = {
        (PartOrderStatus.ADMIN_ORDERED, PartOrderStatus.WAITING_DELIVERY): TransitionRule(
            ADMIN_ONLY, ("actual_cost",)
        ),
        (PartOrderStatus.WAITING_DELIVERY, PartOrderStatus.AVAILABLE): TransitionRule(ADMIN_ONLY),
        (PartOrderStatus.AVAILABLE, PartOrderStatus.CONSUMED): TransitionRule(
            frozenset({Role.TECHNICIAN}), ("consumed_for_service_ref",)
        ),
    }

    for source in (PartOrderStatus.REQUESTED, PartOrderStatus.PENDING):
        table[(source, PartOrderStatus.ADMIN_ORDERED)] = TransitionRule(ADMIN_ONLY, ("supplier_name",))

    for source in PartOrderStatus:
        if not source.is_terminal:
            table[(source, PartOrderStatus.CANCELLED)] = TransitionRule(ADMIN_ONLY)

    return table


JOB_TRANSITIONS = _job_table()
PART_ORDER_TRANSITIONS = _part_order_table()


def reentry_roles(table: Dict[Tuple, TransitionRule], target) -> FrozenSet[Role]:
    """Roles that may re-apply ``target``: admins plus any role that can move a record into it."""
    roles = {Role.ADMIN}
    for (_, to), rule in table.items():
        if to == target:
            roles |= rule.actors
    return frozenset(roles)
