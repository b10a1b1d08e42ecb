"""Unit tests for the spare-part order lifecycle and its job automation."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.config.models import SupplierEntry, SuppliersConfig
from app.domain.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
)
from app.domain.models import Actor, Job, JobStatus, PartOrderStatus, Role
from app.lifecycle import (
    PART_ORDER_TRANSITIONS,
    AuditTrail,
    EventType,
    JobLifecycleService,
    PartOrderService,
    SupplierRouter,
)
from app.persistence import JobRepository, PartOrderRepository, get_session
from tests.helpers import admin_actor, technician_actor, temp_database


@pytest.fixture
def db(tmp_path):
    with temp_database(tmp_path):
        yield


@pytest.fixture
def published():
    return []


@pytest.fixture
def service(db, published):
    jobs = JobLifecycleService(publisher=published.append)
    router = SupplierRouter(
        SuppliersConfig(suppliers=[SupplierEntry(name="Tehno Parts", email="tehno@example.com")])
    )
    return PartOrderService(jobs, router=router, publisher=published.append)


def seed_job(status=JobStatus.IN_PROGRESS, technician_ref="tech-1") -> Job:
    job = Job(
        client_ref="client-1",
        appliance_ref="fridge-2",
        technician_ref=technician_ref,
        status=status,
        created_at=datetime.now(timezone.utc),
    )
    with get_session() as session:
        return JobRepository(session).add(job)


def job_status(job_id: int) -> JobStatus:
    with get_session() as session:
        return JobRepository(session).get(job_id).status


def order_status(order_id: int) -> PartOrderStatus:
    with get_session() as session:
        return PartOrderRepository(session).get(order_id).status


def walk_to(service, order_id, target):
    """Advance an admin-created order along the happy path up to ``target``."""
    steps = [
        (PartOrderStatus.ADMIN_ORDERED, {"supplier_name": "Tehno Parts"}),
        (PartOrderStatus.WAITING_DELIVERY, {"actual_cost": "42.00"}),
        (PartOrderStatus.AVAILABLE, {}),
    ]
    for status, payload in steps:
        service.transition(order_id, status, admin_actor(), payload)
        if status == target:
            return


class TestPartOrderCreation:
    """Tests for PartOrderService.create."""

    def test_technician_creates_requested_order(self, service, published):
        job = seed_job()

        result = service.create(job.id, technician_actor(), {"part_name": "Compressor", "quantity": 2})

        order = result.entity
        assert order.status == PartOrderStatus.REQUESTED
        assert order.technician_ref == "tech-1"
        assert order.quantity == 2
        assert published[0].event_type == EventType.PART_REQUESTED

    def test_admin_creates_pending_order(self, service):
        job = seed_job()

        order = service.create(job.id, admin_actor(), {"part_name": "Thermostat"}).entity

        assert order.status == PartOrderStatus.PENDING
        assert order.order_date is None

    def test_admin_direct_order(self, service, published):
        job = seed_job()

        result = service.create(
            job.id, admin_actor(), {"part_name": "Thermostat", "direct_order": True, "supplier_name": "tehno parts"}
        )

        assert result.entity.status == PartOrderStatus.ADMIN_ORDERED
        assert result.entity.order_date is not None
        assert published[0].event_type == EventType.PART_ADMIN_ORDERED
        assert published[0].supplier.email == "tehno@example.com"

    def test_direct_order_requires_supplier(self, service):
        job = seed_job()

        with pytest.raises(PreconditionError):
            service.create(job.id, admin_actor(), {"part_name": "Thermostat", "direct_order": True})

    def test_technician_cannot_direct_order(self, service):
        job = seed_job()

        with pytest.raises(PermissionDeniedError):
            service.create(
                job.id, technician_actor(), {"part_name": "Fan", "direct_order": True, "supplier_name": "Tehno Parts"}
            )

    def test_technician_must_own_job(self, service):
        job = seed_job(technician_ref="tech-1")

        with pytest.raises(PermissionDeniedError):
            service.create(job.id, technician_actor("tech-2"), {"part_name": "Fan"})

    def test_unknown_job(self, service):
        with pytest.raises(NotFoundError):
            service.create(999, admin_actor(), {"part_name": "Fan"})

    def test_closed_job(self, service):
        job = seed_job(status=JobStatus.COMPLETED)

        with pytest.raises(PreconditionError):
            service.create(job.id, admin_actor(), {"part_name": "Fan"})

    def test_partner_cannot_order(self, service):
        job = seed_job()

        with pytest.raises(PermissionDeniedError):
            service.create(job.id, Actor(role=Role.BUSINESS_PARTNER, id="p-1"), {"part_name": "Fan"})

    def test_creation_audited(self, service):
        job = seed_job()

        order = service.create(job.id, admin_actor(), {"part_name": "Fan"}).entity

        entries = AuditTrail().entries_for("part_order", order.id)
        assert entries[0].action == "created"
        assert entries[0].detail["service_ref"] == job.id
        assert entries[0].detail["part_name"] == "Fan"


class TestPartOrderTransitions:
    """Tests for PartOrderService.transition."""

    ABSENT_PAIRS = [
        (source, target)
        for source in PartOrderStatus
        for target in PartOrderStatus
        if source != target
        and (source, target) not in PART_ORDER_TRANSITIONS
        and not (source.is_entry_point and target.is_entry_point)
    ]

    @pytest.mark.parametrize("source, target", ABSENT_PAIRS)
    def test_absent_pair_is_rejected(self, service, source, target):
        job = seed_job()
        order = service.create(job.id, admin_actor(), {"part_name": "Fan"}).entity
        with get_session() as session:
            PartOrderRepository(session).compare_and_set_status(
                order.model_copy(update={"status": source}), PartOrderStatus.PENDING
            )

        with pytest.raises(PreconditionError):
            service.transition(
                order.id,
                target,
                admin_actor(),
                {"supplier_name": "Tehno Parts", "actual_cost": "1", "consumed_for_service_ref": job.id},
            )

        assert order_status(order.id) == source

    def test_happy_path(self, service, published):
        job = seed_job()
        order = service.create(job.id, technician_actor(), {"part_name": "Compressor"}).entity

        service.transition(order.id, PartOrderStatus.ADMIN_ORDERED, admin_actor(), {"supplier_name": "Tehno Parts"})
        service.transition(order.id, PartOrderStatus.WAITING_DELIVERY, admin_actor(), {"actual_cost": "120.50"})
        service.transition(order.id, PartOrderStatus.AVAILABLE, admin_actor())
        result = service.transition(
            order.id, PartOrderStatus.CONSUMED, technician_actor(), {"consumed_for_service_ref": job.id}
        )

        consumed = result.entity
        assert consumed.status == PartOrderStatus.CONSUMED
        assert consumed.actual_cost == Decimal("120.50")
        assert consumed.consumed_for_service_ref == job.id
        with get_session() as session:
            assert JobRepository(session).get(job.id).used_parts_manifest == ["Compressor"]
        part_events = [event.event_type for event in published if event.entity_kind == "part_order"]
        assert part_events == [
            EventType.PART_REQUESTED,
            EventType.PART_ADMIN_ORDERED,
            EventType.PART_WAITING_DELIVERY,
            EventType.PART_AVAILABLE,
            EventType.PART_CONSUMED,
        ]

    def test_admin_ordered_requires_supplier(self, service):
        job = seed_job()
        order = service.create(job.id, admin_actor(), {"part_name": "Fan"}).entity

        with pytest.raises(PreconditionError):
            service.transition(order.id, PartOrderStatus.ADMIN_ORDERED, admin_actor())

    def test_supplier_from_creation_satisfies_requirement(self, service):
        job = seed_job()
        order = service.create(job.id, admin_actor(), {"part_name": "Fan", "supplier_name": "Tehno Parts"}).entity

        result = service.transition(order.id, PartOrderStatus.ADMIN_ORDERED, admin_actor())

        assert result.entity.supplier_name == "Tehno Parts"
        assert result.event.supplier.rule == "exact"

    def test_waiting_delivery_requires_cost(self, service):
        job = seed_job()
        order = service.create(job.id, admin_actor(), {"part_name": "Fan"}).entity
        walk_to(service, order.id, PartOrderStatus.ADMIN_ORDERED)

        with pytest.raises(PreconditionError):
            service.transition(order.id, PartOrderStatus.WAITING_DELIVERY, admin_actor())

    def test_consumed_requires_job_reference(self, service):
        job = seed_job()
        order = service.create(job.id, technician_actor(), {"part_name": "Fan"}).entity
        walk_to(service, order.id, PartOrderStatus.AVAILABLE)

        with pytest.raises(PreconditionError):
            service.transition(order.id, PartOrderStatus.CONSUMED, technician_actor())

        assert order_status(order.id) == PartOrderStatus.AVAILABLE

    def test_consumed_for_unknown_job(self, service):
        job = seed_job()
        order = service.create(job.id, technician_actor(), {"part_name": "Fan"}).entity
        walk_to(service, order.id, PartOrderStatus.AVAILABLE)

        with pytest.raises(NotFoundError):
            service.transition(
                order.id, PartOrderStatus.CONSUMED, technician_actor(), {"consumed_for_service_ref": 4040}
            )

        assert order_status(order.id) == PartOrderStatus.AVAILABLE

    def test_only_assigned_technician_consumes(self, service):
        job = seed_job()
        order = service.create(job.id, technician_actor(), {"part_name": "Fan"}).entity
        walk_to(service, order.id, PartOrderStatus.AVAILABLE)

        with pytest.raises(PermissionDeniedError):
            service.transition(
                order.id, PartOrderStatus.CONSUMED, technician_actor("tech-9"), {"consumed_for_service_ref": job.id}
            )

    def test_technician_assigned_after_order_consumes(self, service):
        job = seed_job(status=JobStatus.PENDING, technician_ref=None)
        order = service.create(job.id, admin_actor(), {"part_name": "Fan"}).entity
        assert order.technician_ref is None

        service.jobs.transition(job.id, JobStatus.ASSIGNED, admin_actor(), {"technician_ref": "tech-1"})
        service.jobs.transition(job.id, JobStatus.IN_PROGRESS, technician_actor())
        walk_to(service, order.id, PartOrderStatus.AVAILABLE)

        result = service.transition(
            order.id, PartOrderStatus.CONSUMED, technician_actor(), {"consumed_for_service_ref": job.id}
        )

        assert result.entity.status == PartOrderStatus.CONSUMED
        assert result.entity.technician_ref == "tech-1"
        with get_session() as session:
            assert PartOrderRepository(session).get(order.id).technician_ref == "tech-1"
            assert JobRepository(session).get(job.id).used_parts_manifest == ["Fan"]

    def test_reassigned_job_moves_consumption_rights(self, service):
        job = seed_job(technician_ref="tech-1")
        order = service.create(job.id, technician_actor(), {"part_name": "Fan"}).entity
        walk_to(service, order.id, PartOrderStatus.AVAILABLE)
        with get_session() as session:
            repo = JobRepository(session)
            reassigned = repo.get(job.id).model_copy(update={"technician_ref": "tech-2"})
            repo.compare_and_set_status(reassigned, reassigned.status)

        with pytest.raises(PermissionDeniedError):
            service.transition(
                order.id, PartOrderStatus.CONSUMED, technician_actor("tech-1"), {"consumed_for_service_ref": job.id}
            )
        result = service.transition(
            order.id, PartOrderStatus.CONSUMED, technician_actor("tech-2"), {"consumed_for_service_ref": job.id}
        )

        assert result.entity.technician_ref == "tech-2"

    def test_technician_cannot_order_from_supplier(self, service):
        job = seed_job()
        order = service.create(job.id, technician_actor(), {"part_name": "Fan"}).entity

        with pytest.raises(PermissionDeniedError):
            service.transition(
                order.id, PartOrderStatus.ADMIN_ORDERED, technician_actor(), {"supplier_name": "Tehno Parts"}
            )

    def test_cancel_from_any_open_state(self, service, published):
        job = seed_job()
        order = service.create(job.id, admin_actor(), {"part_name": "Fan"}).entity
        walk_to(service, order.id, PartOrderStatus.WAITING_DELIVERY)

        service.transition(order.id, PartOrderStatus.CANCELLED, admin_actor())

        assert order_status(order.id) == PartOrderStatus.CANCELLED
        assert published[-1].event_type == EventType.PART_CANCELLED

    def test_entry_points_are_interchangeable_noop(self, service, published):
        job = seed_job()
        order = service.create(job.id, technician_actor(), {"part_name": "Fan"}).entity
        published.clear()

        result = service.transition(order.id, PartOrderStatus.PENDING, admin_actor())

        assert not result.changed
        assert order_status(order.id) == PartOrderStatus.REQUESTED
        assert published == []

    def test_retry_after_commit_is_noop(self, service, published):
        job = seed_job()
        order = service.create(job.id, admin_actor(), {"part_name": "Fan"}).entity
        walk_to(service, order.id, PartOrderStatus.WAITING_DELIVERY)
        service.transition(order.id, PartOrderStatus.AVAILABLE, admin_actor(), expected_status="waiting_delivery")
        published.clear()

        retry = service.transition(
            order.id, PartOrderStatus.AVAILABLE, admin_actor(), expected_status="waiting_delivery"
        )

        assert not retry.changed
        assert retry.entity.status == PartOrderStatus.AVAILABLE
        assert published == []

    def test_noop_requires_permission(self, service):
        job = seed_job()
        order = service.create(job.id, admin_actor(), {"part_name": "Fan"}).entity
        walk_to(service, order.id, PartOrderStatus.AVAILABLE)

        for actor in (Actor(role=Role.CLIENT, id="client-1"), technician_actor()):
            with pytest.raises(PermissionDeniedError):
                service.transition(order.id, PartOrderStatus.AVAILABLE, actor)

    def test_technician_noop_on_entry_point(self, service):
        job = seed_job()
        order = service.create(job.id, technician_actor(), {"part_name": "Fan"}).entity

        assert not service.transition(order.id, PartOrderStatus.REQUESTED, technician_actor()).changed
        with pytest.raises(PermissionDeniedError):
            service.transition(order.id, PartOrderStatus.REQUESTED, technician_actor("tech-9"))

    def test_stale_expected_status(self, service):
        job = seed_job()
        order = service.create(job.id, admin_actor(), {"part_name": "Fan"}).entity
        walk_to(service, order.id, PartOrderStatus.ADMIN_ORDERED)

        with pytest.raises(ConflictError):
            service.transition(order.id, PartOrderStatus.CANCELLED, admin_actor(), expected_status="pending")

        assert order_status(order.id) == PartOrderStatus.ADMIN_ORDERED

    def test_unknown_order(self, service):
        with pytest.raises(NotFoundError):
            service.transition(555, PartOrderStatus.CANCELLED, admin_actor())


class TestJobAutomation:
    """Tests for the job moves driven by part orders."""

    def test_new_order_parks_in_progress_job(self, service, published):
        job = seed_job(status=JobStatus.IN_PROGRESS)

        result = service.create(job.id, technician_actor(), {"part_name": "Fan"})

        assert job_status(job.id) == JobStatus.WAITING_PARTS
        assert len(result.linked) == 1
        assert result.linked[0].entity.status == JobStatus.WAITING_PARTS
        job_events = [event for event in published if event.entity_kind == "job"]
        assert job_events[0].event_type == EventType.JOB_WAITING_PARTS
        assert job_events[0].actor.role == Role.SYSTEM

    def test_job_not_in_progress_is_left_alone(self, service):
        job = seed_job(status=JobStatus.SCHEDULED)

        result = service.create(job.id, technician_actor(), {"part_name": "Fan"})

        assert result.linked == []
        assert job_status(job.id) == JobStatus.SCHEDULED

    def test_available_part_resumes_job(self, service, published):
        job = seed_job(status=JobStatus.IN_PROGRESS)
        order = service.create(job.id, admin_actor(), {"part_name": "Fan"}).entity
        walk_to(service, order.id, PartOrderStatus.WAITING_DELIVERY)
        assert job_status(job.id) == JobStatus.WAITING_PARTS

        result = service.transition(order.id, PartOrderStatus.AVAILABLE, admin_actor())

        assert job_status(job.id) == JobStatus.IN_PROGRESS
        assert result.linked[0].event.event_type == EventType.JOB_RESUMED

    def test_available_part_for_job_not_waiting(self, service):
        job = seed_job(status=JobStatus.IN_PROGRESS)
        order = service.create(job.id, admin_actor(), {"part_name": "Fan"}).entity
        walk_to(service, order.id, PartOrderStatus.WAITING_DELIVERY)
        JobLifecycleService().transition(job.id, JobStatus.CANCELLED, admin_actor())

        result = service.transition(order.id, PartOrderStatus.AVAILABLE, admin_actor())

        assert result.changed
        assert result.linked == []
        assert job_status(job.id) == JobStatus.CANCELLED

    def test_job_move_failure_keeps_part_change(self, service, monkeypatch):
        job = seed_job(status=JobStatus.IN_PROGRESS, technician_ref="tech-1")

        def refuse(*args, **kwargs):
            raise ConflictError("job changed", expected_status="in_progress", actual_status="completed")

        monkeypatch.setattr(service.jobs, "transition", refuse)

        result = service.create(job.id, technician_actor(), {"part_name": "Fan"})

        assert result.changed
        assert result.linked == []
        assert order_status(result.entity.id) == PartOrderStatus.REQUESTED
