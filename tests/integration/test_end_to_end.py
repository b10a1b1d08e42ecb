"""End-to-end: a repair that needs a spare part, from intake to completion.

Runs the assembled ServiceDesk against a real SQLite database with inline
dispatch, recording SMTP and SMS transports.
"""

from decimal import Decimal

import pytest

from app.config.models import AppConfig, DispatchConfig, EmailConfig, SupplierEntry, SuppliersConfig
from app.desk import build_service_desk
from app.domain.models import Contact, JobStatus, PartOrderStatus, Role
from tests.helpers import (
    RecordingSMTPClient,
    ScriptedSMSProvider,
    admin_actor,
    make_env_config,
    technician_actor,
    temp_database,
)


@pytest.fixture
def smtp_client():
    return RecordingSMTPClient()


@pytest.fixture
def sms_provider():
    return ScriptedSMSProvider()


@pytest.fixture
def desk(tmp_path, smtp_client, sms_provider):
    config = AppConfig(
        email=EmailConfig(reverify_on_failure=False),
        suppliers=SuppliersConfig(
            suppliers=[SupplierEntry(name="Tehno Parts", email="orders@tehno.example.com", phone="067 555 444")]
        ),
        dispatch=DispatchConfig(mode="inline"),
    )
    with temp_database(tmp_path):
        desk = build_service_desk(
            config,
            make_env_config(),
            smtp_client=smtp_client,
            sms_provider=sms_provider,
            sleep=lambda seconds: None,
        )
        desk.add_contact(Contact(role=Role.CLIENT, ref_id="client-1", name="Ana", email="ana@example.com", phone="067 123 456"))
        desk.add_contact(Contact(role=Role.TECHNICIAN, ref_id="tech-1", name="Marko", email="marko@example.com", phone="069 111 222"))
        desk.add_contact(Contact(role=Role.ADMIN, ref_id="admin-1", name="Desk", email="desk@example.com"))
        yield desk
        desk.close()


def event_types(desk, entity_kind, entity_id):
    return [
        entry.detail["event_type"]
        for entry in desk.audit_entries(entity_kind, entity_id)
        if entry.action == "notification"
    ]


def client_deliveries(result):
    return {
        (entry["channel"], entry["attempted"] and entry["succeeded"])
        for entry in result.as_dict(timeout=5)["notifications"]
        if entry["role"] == "client"
    }


def test_repair_with_spare_part(desk, smtp_client, sms_provider):
    admin = admin_actor()
    technician = technician_actor()

    job = desk.create_job(admin, {"client_ref": "client-1", "appliance_ref": "Gorenje washer WA1"}).entity
    assigned = desk.transition_job(job.id, "assigned", admin, {"technician_ref": "tech-1"})
    assert client_deliveries(assigned) == {("email", True), ("sms", True)}
    desk.transition_job(job.id, "in_progress", technician)

    # Requesting a part parks the job
    requested = desk.create_part_order(
        job.id, technician, {"part_name": "Drain pump", "manufacturer": "Gorenje", "part_number": "DP-100"}
    )
    assert requested.entity.status == PartOrderStatus.REQUESTED
    assert [linked.entity.status for linked in requested.linked] == [JobStatus.WAITING_PARTS]
    order_id = requested.entity.id

    ordered = desk.transition_part_order(
        order_id, "admin_ordered", admin, {"supplier_name": "tehno"}, expected_status="requested"
    )
    supplier_entries = [e for e in ordered.as_dict(timeout=5)["notifications"] if e["role"] == "supplier"]
    assert {(e["channel"], e["succeeded"]) for e in supplier_entries} == {("email", True), ("sms", True)}
    assert "orders@tehno.example.com" in smtp_client.recipients
    assert "+38267555444" in sms_provider.phones

    desk.transition_part_order(order_id, "waiting_delivery", admin, {"actual_cost": "42.50"})

    # Arrival resumes the job
    available = desk.transition_part_order(order_id, "available", admin)
    assert [linked.entity.status for linked in available.linked] == [JobStatus.IN_PROGRESS]

    consumed = desk.transition_part_order(order_id, "consumed", technician, {"consumed_for_service_ref": job.id})
    assert consumed.entity.consumed_for_service_ref == job.id
    assert consumed.entity.actual_cost == Decimal("42.50")

    completed = desk.transition_job(
        job.id,
        "completed",
        technician,
        {"technician_notes": "Pump replaced, tested two cycles", "work_performed": "Drain pump swap"},
    )

    assert client_deliveries(completed) == {("email", True), ("sms", True)}
    assert "+38267123456" in sms_provider.phones

    final = completed.entity
    assert final.status == JobStatus.COMPLETED
    assert final.used_parts_manifest == ["Drain pump"]
    assert final.outcome.is_completely_fixed is True
    assert final.completed_at is not None

    transitions = [
        (entry.detail["from"], entry.detail["to"])
        for entry in desk.audit_entries("job", job.id)
        if entry.action in ("created", "transition")
    ]
    assert transitions == [
        (None, "pending"),
        ("pending", "assigned"),
        ("assigned", "in_progress"),
        ("in_progress", "waiting_parts"),
        ("waiting_parts", "in_progress"),
        ("in_progress", "completed"),
    ]

    job_events = event_types(desk, "job", job.id)
    assert "job.waiting_parts" in job_events
    assert "job.resumed" in job_events
    assert "job.completed" in job_events
    assert "job.started" in job_events

    part_events = event_types(desk, "part_order", order_id)
    assert set(part_events) >= {"part.requested", "part.admin_ordered", "part.available", "part.consumed"}

    assert smtp_client.recipients.count("ana@example.com") >= 4


def test_cancelled_order_leaves_job_parked(desk):
    admin = admin_actor()
    job = desk.create_job(
        admin, {"client_ref": "client-1", "appliance_ref": "Fridge", "technician_ref": "tech-1"}
    ).entity
    desk.transition_job(job.id, "in_progress", technician_actor())
    order = desk.create_part_order(job.id, admin, {"part_name": "Fan motor"}).entity

    cancelled = desk.transition_part_order(order.id, "cancelled", admin, expected_status="pending")

    assert cancelled.entity.status == PartOrderStatus.CANCELLED
    assert cancelled.linked == []
    assert desk.jobs.get(job.id).status == JobStatus.WAITING_PARTS
