"""Spare-part order lifecycle.

Part orders follow requested/pending -> admin_ordered -> waiting_delivery ->
available -> consumed, with cancellation from any non-terminal state. After a
part-order change commits, the linked job may be moved by the system actor:

- a new or admin-ordered part for an in_progress job parks the job in waiting_parts
- a part becoming available for a waiting_parts job resumes it

The job move is a separate transition; if it cannot be applied the part-order
change still stands and the skip is logged.
"""

from typing import Any, FrozenSet, List, Mapping, Optional, Union

from app.domain.exceptions import (
    ConflictError,
    DomainError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
)
from app.domain.models import Actor, JobStatus, PartOrder, PartOrderStatus, Role
from app.logging import get_logger
from app.logging.context import log_context
from app.persistence import JobRepository, PartOrderRepository, PersistenceError, get_session
from app.utils.timestamps import format_timestamp, utc_now

from .audit import AuditTrail
from .events import PART_EVENTS, LifecycleEvent, TransitionResult
from .jobs import JobLifecycleService, Publisher, publish_safely
from .requests import (
    PartOrderIntake,
    PartOrderTransitionRequest,
    coerce_status,
    parse_request,
    require_actor,
)
from .suppliers import SupplierMatch, SupplierRouter
from .transitions import PART_ORDER_TRANSITIONS, reentry_roles

logger = get_logger(__name__, component="lifecycle")

PARKING_STATUSES = (PartOrderStatus.REQUESTED, PartOrderStatus.PENDING, PartOrderStatus.ADMIN_ORDERED)


class PartOrderService:
    """Creates part orders, applies their transitions and drives the linked job."""

    def __init__(
        self,
        jobs: JobLifecycleService,
        router: Optional[SupplierRouter] = None,
        publisher: Optional[Publisher] = None,
        audit: Optional[AuditTrail] = None,
    ):
        self.jobs = jobs
        self.router = router or SupplierRouter()
        self.publisher = publisher
        self.audit = audit or AuditTrail()

    def create(
        self,
        job_id: int,
        actor: Actor,
        payload: Union[Mapping[str, Any], PartOrderIntake, None],
    ) -> TransitionResult:
        """Create a part order for ``job_id``.

        Technicians create ``requested`` orders for their own jobs. Admins
        create ``pending`` orders, or ``admin_ordered`` ones when
        ``direct_order`` is set (which requires ``supplier_name``).

        Raises:
            ValidationError: If the actor or payload is malformed
            NotFoundError: If the job doesn't exist
            PermissionDeniedError: If the actor may not order parts for the job
            PreconditionError: If the job is closed or a direct order has no supplier
        """
        actor = require_actor(actor)
        intake = parse_request(PartOrderIntake, payload)

        if actor.role not in (Role.ADMIN, Role.TECHNICIAN):
            raise PermissionDeniedError(f"Role {actor.role.value} may not order parts")
        if intake.direct_order and actor.role != Role.ADMIN:
            raise PermissionDeniedError("Only admins may place direct part orders")

        if actor.role == Role.TECHNICIAN:
            status = PartOrderStatus.REQUESTED
        elif intake.direct_order:
            status = PartOrderStatus.ADMIN_ORDERED
        else:
            status = PartOrderStatus.PENDING

        if status == PartOrderStatus.ADMIN_ORDERED and not intake.supplier_name:
            raise PreconditionError(
                "A direct part order requires supplier_name", target_status=status.value
            )

        now = utc_now()
        with get_session() as session:
            job = JobRepository(session).get(job_id)
            if job is None:
                raise NotFoundError(f"Job {job_id} not found")
            if job.status.is_terminal:
                raise PreconditionError(
                    f"Job {job_id} is {job.status.value}; parts can no longer be ordered",
                    current_status=job.status.value,
                )
            if actor.role == Role.TECHNICIAN and job.technician_ref != actor.id:
                raise PermissionDeniedError(f"Technician {actor.id} is not assigned to job {job_id}")

            order = PartOrder(
                service_ref=job_id,
                technician_ref=job.technician_ref,
                part_name=intake.part_name,
                part_number=intake.part_number,
                manufacturer=intake.manufacturer,
                quantity=intake.quantity,
                urgency=intake.urgency,
                status=status,
                supplier_name=intake.supplier_name,
                order_date=now if status == PartOrderStatus.ADMIN_ORDERED else None,
                expected_delivery=intake.expected_delivery,
                admin_notes=intake.admin_notes,
                created_at=now,
            )
            order = PartOrderRepository(session).add(order)
            self.audit.record_transition(
                session,
                "part_order",
                order.id,
                None,
                status.value,
                actor,
                detail={"service_ref": job_id, "part_name": order.part_name},
            )

        with log_context(entity_kind="part_order", entity_id=order.id, service_ref=job_id):
            logger.info(
                f"Part order {order.id} ({order.part_name}) created as {status.value} for job {job_id}",
                extra={"event": "part_order.created", "actor_role": actor.role.value},
            )
            supplier = self._route(order) if status == PartOrderStatus.ADMIN_ORDERED else None
            event = LifecycleEvent(
                event_type=PART_EVENTS[status],
                entity_kind="part_order",
                entity_id=order.id,
                job=job,
                actor=actor,
                part_order=order,
                supplier=supplier,
            )
            result = TransitionResult(entity=order, event=event, ticket=publish_safely(self.publisher, event))
            result.linked = self._drive_job(order)
            return result

    def get(self, order_id: int) -> PartOrder:
        with get_session() as session:
            order = PartOrderRepository(session).get(order_id)
        if order is None:
            raise NotFoundError(f"Part order {order_id} not found")
        return order

    def transition(
        self,
        order_id: int,
        target: Union[PartOrderStatus, str],
        actor: Actor,
        payload: Union[Mapping[str, Any], PartOrderTransitionRequest, None] = None,
        expected_status: Union[PartOrderStatus, str, None] = None,
    ) -> TransitionResult:
        """Move a part order to ``target``; see JobLifecycleService.transition for semantics.

        Raises:
            ValidationError, NotFoundError, PreconditionError,
            PermissionDeniedError, ConflictError
        """
        actor = require_actor(actor)
        target = coerce_status(PartOrderStatus, target)
        request = parse_request(PartOrderTransitionRequest, payload)
        expected = coerce_status(PartOrderStatus, expected_status) if expected_status is not None else None

        with log_context(entity_kind="part_order", entity_id=order_id, target_status=target.value):
            with get_session() as session:
                orders = PartOrderRepository(session)
                jobs = JobRepository(session)
                order = orders.get(order_id)
                if order is None:
                    raise NotFoundError(f"Part order {order_id} not found")

                # The job's technician may have changed since the order was created
                parent = jobs.get(order.service_ref)
                technician_ref = parent.technician_ref if parent else order.technician_ref

                if order.status == target or (order.status.is_entry_point and target.is_entry_point):
                    roles = reentry_roles(PART_ORDER_TRANSITIONS, target)
                    if target.is_entry_point:
                        roles |= {Role.TECHNICIAN}
                    _authorize(roles, actor, order, target, technician_ref)
                    logger.info(
                        f"Part order {order_id} already {order.status.value}; nothing to do",
                        extra={"event": "part_order.transition.noop"},
                    )
                    return TransitionResult(entity=order)

                observed = expected or order.status
                if observed != order.status:
                    raise ConflictError(
                        f"Part order {order_id} is {order.status.value}, caller expected {observed.value}",
                        expected_status=observed.value,
                        actual_status=order.status.value,
                    )

                rule = PART_ORDER_TRANSITIONS.get((order.status, target))
                if rule is None:
                    raise PreconditionError(
                        f"Part order {order_id} cannot move from {order.status.value} to {target.value}",
                        current_status=order.status.value,
                        target_status=target.value,
                    )

                _authorize(rule.actors, actor, order, target, technician_ref)
                updated = self._apply(order, target, request, rule.requires)
                if technician_ref:
                    updated = updated.model_copy(update={"technician_ref": technician_ref})

                if target == PartOrderStatus.CONSUMED:
                    if jobs.get(request.consumed_for_service_ref) is None:
                        raise NotFoundError(
                            f"Job {request.consumed_for_service_ref} referenced by consumed_for_service_ref not found"
                        )
                    jobs.append_used_part(request.consumed_for_service_ref, order.part_name)

                if not orders.compare_and_set_status(updated, observed):
                    current = orders.get(order_id)
                    raise ConflictError(
                        f"Part order {order_id} changed concurrently; expected {observed.value}",
                        expected_status=observed.value,
                        actual_status=current.status.value if current else None,
                    )

                self.audit.record_transition(
                    session,
                    "part_order",
                    order_id,
                    order.status.value,
                    target.value,
                    actor,
                    detail=_audit_detail(request),
                )
                job = jobs.get(order.service_ref)

            logger.info(
                f"Part order {order_id} moved {order.status.value} -> {target.value} by {actor.role.value}",
                extra={"event": "part_order.transition.applied", "from_status": order.status.value},
            )

            supplier = self._route(updated) if target == PartOrderStatus.ADMIN_ORDERED else None
            event = LifecycleEvent(
                event_type=PART_EVENTS[target],
                entity_kind="part_order",
                entity_id=order_id,
                job=job,
                actor=actor,
                previous_status=order.status.value,
                part_order=updated,
                supplier=supplier,
            )
            result = TransitionResult(entity=updated, event=event, ticket=publish_safely(self.publisher, event))
            result.linked = self._drive_job(updated)
            return result

    @staticmethod
    def _apply(
        order: PartOrder,
        target: PartOrderStatus,
        request: PartOrderTransitionRequest,
        requires: tuple,
    ) -> PartOrder:
        changes = {"status": target}

        if request.supplier_name:
            changes["supplier_name"] = request.supplier_name
        if request.expected_delivery:
            changes["expected_delivery"] = request.expected_delivery
        if request.admin_notes:
            changes["admin_notes"] = request.admin_notes
        if request.actual_cost is not None:
            changes["actual_cost"] = request.actual_cost

        for field_name in requires:
            value = getattr(request, field_name)
            if field_name == "supplier_name":
                value = value or order.supplier_name
            if value is None or value == "":
                raise PreconditionError(
                    f"Moving part order {order.id} to {target.value} requires {field_name}",
                    current_status=order.status.value,
                    target_status=target.value,
                )

        if target == PartOrderStatus.ADMIN_ORDERED:
            changes["order_date"] = utc_now()
        elif target == PartOrderStatus.CONSUMED:
            changes["consumed_for_service_ref"] = request.consumed_for_service_ref

        return order.model_copy(update=changes)

    def _route(self, order: PartOrder) -> SupplierMatch:
        return self.router.resolve(order.supplier_name, order.manufacturer)

    def _drive_job(self, order: PartOrder) -> List[TransitionResult]:
        """Apply the automatic job move implied by ``order``'s new status, if any."""
        if order.status in PARKING_STATUSES:
            required, target = JobStatus.IN_PROGRESS, JobStatus.WAITING_PARTS
        elif order.status == PartOrderStatus.AVAILABLE:
            required, target = JobStatus.WAITING_PARTS, JobStatus.IN_PROGRESS
        else:
            return []

        try:
            job = self.jobs.get(order.service_ref)
            if job.status != required:
                logger.info(
                    f"Job {job.id} is {job.status.value}; not moving it to {target.value} "
                    f"for part order {order.id}",
                    extra={"event": "part_order.job_sync.skipped", "job_status": job.status.value},
                )
                return []
            return [self.jobs.transition(job.id, target, Actor.system(), expected_status=required)]
        except (DomainError, PersistenceError) as e:
            logger.warning(
                f"Could not move job {order.service_ref} to {target.value} for part order {order.id}: {e}",
                extra={"event": "part_order.job_sync.skipped", "error_type": type(e).__name__},
            )
            return []


def _authorize(
    roles: FrozenSet[Role],
    actor: Actor,
    order: PartOrder,
    target: PartOrderStatus,
    technician_ref: Optional[str],
) -> None:
    if actor.role not in roles:
        raise PermissionDeniedError(f"Role {actor.role.value} may not move a part order to {target.value}")
    if actor.role == Role.TECHNICIAN and technician_ref != actor.id:
        raise PermissionDeniedError(
            f"Technician {actor.id} is not assigned to job {order.service_ref} of part order {order.id}"
        )


def _audit_detail(request: PartOrderTransitionRequest) -> dict:
    detail = {}
    if request.supplier_name:
        detail["supplier_name"] = request.supplier_name
    if request.actual_cost is not None:
        detail["actual_cost"] = str(request.actual_cost)
    if request.expected_delivery:
        detail["expected_delivery"] = format_timestamp(request.expected_delivery)
    if request.consumed_for_service_ref is not None:
        detail["consumed_for_service_ref"] = request.consumed_for_service_ref
    return detail
