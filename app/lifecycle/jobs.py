"""Service job lifecycle.

A transition is validated against the loaded job, persisted with a
compare-and-set update together with its audit entry, and only after the
commit is the lifecycle event handed to the publisher. Publishing problems
are logged and never undo the committed transition.
"""

from typing import Any, Callable, Mapping, Optional, Union

from app.domain.exceptions import ConflictError, NotFoundError, PermissionDeniedError, PreconditionError
from app.domain.models import Actor, Job, JobStatus, Role
from app.logging import get_logger
from app.logging.context import log_context
from app.persistence import JobRepository, get_session
from app.utils.timestamps import format_timestamp, utc_now

from .audit import AuditTrail
from .events import EventType, LifecycleEvent, TransitionResult, job_event_type
from .requests import (
    JobIntake,
    JobTransitionRequest,
    coerce_status,
    parse_request,
    require_actor,
)
from .transitions import JOB_TRANSITIONS, TransitionRule, reentry_roles

logger = get_logger(__name__, component="lifecycle")

Publisher = Callable[[LifecycleEvent], Any]

INTAKE_ROLES = (Role.ADMIN, Role.TECHNICIAN, Role.BUSINESS_PARTNER)

# Statuses a job may hold without an assigned technician
UNASSIGNED_STATUSES = (JobStatus.PENDING, JobStatus.ASSIGNED, JobStatus.CANCELLED)


def publish_safely(publisher: Optional[Publisher], event: LifecycleEvent) -> Any:
    """Hand ``event`` to the publisher, logging instead of raising on failure."""
    if publisher is None:
        return None
    try:
        return publisher(event)
    except Exception as e:
        logger.error(
            f"Failed to publish {event.event_type.value} for {event.entity_kind} {event.entity_id}: {e}",
            exc_info=True,
            extra={"event": "lifecycle.publish_failed", "event_type": event.event_type.value},
        )
        return None


class JobLifecycleService:
    """Creates jobs and applies validated status transitions."""

    def __init__(self, publisher: Optional[Publisher] = None, audit: Optional[AuditTrail] = None):
        """Initialize the service.

        Args:
            publisher: Called with each LifecycleEvent after its transaction commits;
                its return value (e.g. a NotificationTicket) is passed back to the caller
            audit: Audit trail used for transition entries (creates default if None)
        """
        self.publisher = publisher
        self.audit = audit or AuditTrail()

    def create(self, actor: Actor, payload: Union[Mapping[str, Any], JobIntake, None]) -> TransitionResult:
        """Create a job in ``pending`` and raise JOB_CREATED.

        Raises:
            ValidationError: If the actor or payload is malformed
            PermissionDeniedError: If the actor's role may not create jobs
        """
        actor = require_actor(actor)
        intake = parse_request(JobIntake, payload)

        if actor.role not in INTAKE_ROLES:
            raise PermissionDeniedError(f"Role {actor.role.value} may not create jobs")

        technician_ref = intake.technician_ref
        partner_ref = intake.business_partner_ref
        if actor.role == Role.TECHNICIAN:
            technician_ref = technician_ref or actor.id
        elif actor.role == Role.BUSINESS_PARTNER:
            if partner_ref and partner_ref != actor.id:
                raise PermissionDeniedError("Business partners may only create jobs for themselves")
            partner_ref = actor.id

        job = Job(
            client_ref=intake.client_ref,
            appliance_ref=intake.appliance_ref,
            description=intake.description or "",
            technician_ref=technician_ref,
            business_partner_ref=partner_ref,
            warranty_status=intake.warranty_status,
            created_at=utc_now(),
        )

        with get_session() as session:
            job = JobRepository(session).add(job)
            self.audit.record_transition(session, "job", job.id, None, job.status.value, actor)

        with log_context(entity_kind="job", entity_id=job.id):
            logger.info(
                f"Job {job.id} created by {actor.role.value}",
                extra={"event": "job.created", "actor_role": actor.role.value},
            )
            event = LifecycleEvent(
                event_type=EventType.JOB_CREATED,
                entity_kind="job",
                entity_id=job.id,
                job=job,
                actor=actor,
            )
            return TransitionResult(entity=job, event=event, ticket=publish_safely(self.publisher, event))

    def get(self, job_id: int) -> Job:
        with get_session() as session:
            job = JobRepository(session).get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def transition(
        self,
        job_id: int,
        target: Union[JobStatus, str],
        actor: Actor,
        payload: Union[Mapping[str, Any], JobTransitionRequest, None] = None,
        expected_status: Union[JobStatus, str, None] = None,
    ) -> TransitionResult:
        """Move a job to ``target``.

        Args:
            job_id: Job to change
            target: Desired status
            actor: Caller requesting the change
            payload: Transition fields (technician_ref, scheduled_at, reason, ...)
            expected_status: Status the caller last observed; defaults to the
                status loaded for validation

        Returns:
            TransitionResult; ``event`` is None if the job was already in ``target``

        Raises:
            ValidationError: Malformed actor, target, or payload
            NotFoundError: Unknown job
            PreconditionError: Transition not allowed or a required field is missing
            PermissionDeniedError: Actor role or ownership does not allow it
            ConflictError: The job's status changed since it was observed
        """
        actor = require_actor(actor)
        target = coerce_status(JobStatus, target)
        request = parse_request(JobTransitionRequest, payload)
        expected = coerce_status(JobStatus, expected_status) if expected_status is not None else None

        with log_context(entity_kind="job", entity_id=job_id, target_status=target.value):
            with get_session() as session:
                repo = JobRepository(session)
                job = repo.get(job_id)
                if job is None:
                    raise NotFoundError(f"Job {job_id} not found")

                # Re-applying the current status is a no-op even when the caller
                # passes a stale expected_status (a retry after a committed move).
                if job.status == target:
                    self._authorize_reentry(actor, job, target)
                    logger.info(
                        f"Job {job_id} already {target.value}; nothing to do",
                        extra={"event": "job.transition.noop"},
                    )
                    return TransitionResult(entity=job)

                observed = expected or job.status
                if observed != job.status:
                    raise ConflictError(
                        f"Job {job_id} is {job.status.value}, caller expected {observed.value}",
                        expected_status=observed.value,
                        actual_status=job.status.value,
                    )

                rule = JOB_TRANSITIONS.get((job.status, target))
                if rule is None:
                    raise PreconditionError(
                        f"Job {job_id} cannot move from {job.status.value} to {target.value}",
                        current_status=job.status.value,
                        target_status=target.value,
                    )

                self._authorize(rule, actor, job, target, request)
                updated = self._apply(job, target, request)

                if not repo.compare_and_set_status(updated, observed):
                    current = repo.get(job_id)
                    raise ConflictError(
                        f"Job {job_id} changed concurrently; expected {observed.value}",
                        expected_status=observed.value,
                        actual_status=current.status.value if current else None,
                    )
                # Fields the update leaves alone (the used-parts manifest) come from the row
                updated = repo.get(job_id)

                self.audit.record_transition(
                    session,
                    "job",
                    job_id,
                    job.status.value,
                    target.value,
                    actor,
                    detail=_audit_detail(request),
                )

            logger.info(
                f"Job {job_id} moved {job.status.value} -> {target.value} by {actor.role.value}",
                extra={"event": "job.transition.applied", "from_status": job.status.value},
            )

            event = LifecycleEvent(
                event_type=job_event_type(job.status, target),
                entity_kind="job",
                entity_id=job_id,
                job=updated,
                actor=actor,
                previous_status=job.status.value,
                data={"reason": request.reason} if request.reason else {},
            )
            return TransitionResult(entity=updated, event=event, ticket=publish_safely(self.publisher, event))

    @staticmethod
    def _authorize(rule: TransitionRule, actor: Actor, job: Job, target: JobStatus, request: JobTransitionRequest) -> None:
        if actor.role not in rule.actors:
            raise PermissionDeniedError(
                f"Role {actor.role.value} may not move a job from {job.status.value} to {target.value}"
            )

        _check_ownership(actor, job)

        if actor.role == Role.BUSINESS_PARTNER:
            if job.status != JobStatus.PENDING:
                raise PermissionDeniedError("Business partners may only cancel pending jobs")

        if request.technician_ref and actor.role != Role.ADMIN:
            raise PermissionDeniedError("Only admins may assign a technician")

    @staticmethod
    def _authorize_reentry(actor: Actor, job: Job, target: JobStatus) -> None:
        """Only callers who could have made the move may see its no-op result."""
        if actor.role not in reentry_roles(JOB_TRANSITIONS, target):
            raise PermissionDeniedError(f"Role {actor.role.value} may not move a job to {target.value}")
        _check_ownership(actor, job)

    @staticmethod
    def _apply(job: Job, target: JobStatus, request: JobTransitionRequest) -> Job:
        """Return the job as it will look after the transition; raises on missing fields."""

        def missing(field_name: str) -> PreconditionError:
            return PreconditionError(
                f"Moving job {job.id} to {target.value} requires {field_name}",
                current_status=job.status.value,
                target_status=target.value,
            )

        rule = JOB_TRANSITIONS[(job.status, target)]
        changes = {"status": target}
        outcome = job.outcome.model_copy()

        technician_ref = request.technician_ref or job.technician_ref
        if request.technician_ref:
            changes["technician_ref"] = request.technician_ref

        for field_name in rule.requires:
            if field_name == "technician_ref" and not technician_ref:
                raise missing(field_name)
            if field_name != "technician_ref" and not getattr(request, field_name):
                raise missing(field_name)

        if target not in UNASSIGNED_STATUSES and not technician_ref:
            raise missing("an assigned technician")

        if target == JobStatus.SCHEDULED:
            changes["scheduled_at"] = request.scheduled_at
        elif target in (JobStatus.CLIENT_NOT_HOME, JobStatus.CLIENT_NOT_ANSWERING):
            outcome.client_unavailable_reason = request.reason
        elif target == JobStatus.CUSTOMER_REFUSED_REPAIR:
            outcome.customer_refusal_reason = request.reason
        elif target == JobStatus.REPAIR_FAILED:
            outcome.repair_failure_reason = request.reason
            outcome.is_completely_fixed = False
        elif target == JobStatus.COMPLETED:
            changes["technician_notes"] = request.technician_notes
            changes["work_performed"] = request.work_performed
            changes["completed_at"] = utc_now()
            outcome.is_completely_fixed = (
                request.is_completely_fixed if request.is_completely_fixed is not None else True
            )

        if request.cost is not None:
            changes["cost"] = request.cost

        changes["outcome"] = outcome
        return job.model_copy(update=changes)


def _check_ownership(actor: Actor, job: Job) -> None:
    if actor.role == Role.TECHNICIAN and job.technician_ref != actor.id:
        raise PermissionDeniedError(f"Technician {actor.id} is not assigned to job {job.id}")
    if actor.role == Role.BUSINESS_PARTNER and job.business_partner_ref != actor.id:
        raise PermissionDeniedError(f"Job {job.id} does not belong to partner {actor.id}")


def _audit_detail(request: JobTransitionRequest) -> dict:
    detail = {}
    if request.reason:
        detail["reason"] = request.reason
    if request.technician_ref:
        detail["technician_ref"] = request.technician_ref
    if request.scheduled_at:
        detail["scheduled_at"] = format_timestamp(request.scheduled_at)
    if request.cost is not None:
        detail["cost"] = str(request.cost)
    return detail
