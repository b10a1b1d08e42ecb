#!/usr/bin/env python3
"""Sample repair harness for end-to-end validation.

Walks one repair through the whole lifecycle (intake, assignment, a spare
part ordered from a supplier, delivery, consumption, completion) against a
throwaway SQLite database, without running pytest.

E-mail sends are patched out and SMS goes to the console provider unless
SAMPLE_REAL_RUN=1 is set, in which case the configured SMTP server and SMS
gateway are used.

Usage:
    python scripts/run_sample_repair.py --config config.example.yaml

    # Deliver for real (requires SMTP_* and optionally SMS_API_* in .env)
    SAMPLE_REAL_RUN=1 python scripts/run_sample_repair.py --config config.yaml

    # Custom database path
    python scripts/run_sample_repair.py --database /tmp/sample.db
"""

import argparse
import os
import sys
from contextlib import nullcontext
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from app.config.loader import load_config
from app.config.models import DispatchMode
from app.desk import build_service_desk
from app.domain.models import Actor, Contact, Role
from app.logging.config import configure_logging
from app.notifications import ConsoleSMSProvider
from app.persistence.database import close_database, init_database


def print_header(title: str):
    """Print a formatted section header."""
    width = 80
    print("\n" + "=" * width)
    print(f" {title}")
    print("=" * width + "\n")


def print_step(label: str, result):
    data = result.as_dict(timeout=30)
    entity = data["entity"]
    sent = sum(1 for entry in data["notifications"] if entry["succeeded"])
    print(f"  {label:<34} -> {entity['status']:<16} ({sent}/{len(data['notifications'])} notifications delivered)")
    for linked in data.get("linked", []):
        print(f"  {'  linked job ' + str(linked['entity']['id']):<34} -> {linked['entity']['status']}")
    return data


def print_summary_table(desk, job_id: int, order_id: int):
    """Print the audit trail of the sample job and part order."""
    print_header("Audit Trail")

    rows = []
    for kind, entity_id in (("job", job_id), ("part_order", order_id)):
        for entry in desk.audit_entries(kind, entity_id):
            if entry.action == "notification":
                detail = f"{entry.detail['event_type']} {entry.detail['role']}/{entry.detail['channel']}"
                detail += " ok" if entry.detail["succeeded"] else f" {entry.detail.get('error', 'skipped')}"
            else:
                detail = f"{entry.detail.get('from')} -> {entry.detail.get('to')}"
            rows.append((f"{kind} {entity_id}", entry.action, detail))

    width = max(len(detail) for _, _, detail in rows)
    print("┌" + "─" * 14 + "┬" + "─" * 18 + "┬" + "─" * (width + 2) + "┐")
    print(f"│ {'Entity':<12} │ {'Action':<16} │ {'Detail':<{width}} │")
    print("├" + "─" * 14 + "┼" + "─" * 18 + "┼" + "─" * (width + 2) + "┤")
    for entity, action, detail in rows:
        print(f"│ {entity:<12} │ {action:<16} │ {detail:<{width}} │")
    print("└" + "─" * 14 + "┴" + "─" * 18 + "┴" + "─" * (width + 2) + "┘")


def run_sample(desk):
    admin = Actor(role=Role.ADMIN, id="admin-1")
    technician = Actor(role=Role.TECHNICIAN, id="tech-1")

    desk.add_contact(Contact(role=Role.ADMIN, ref_id="admin-1", name="Service Desk", email="desk@example.com"))
    desk.add_contact(Contact(role=Role.TECHNICIAN, ref_id="tech-1", name="Marko", phone="069 111 222"))
    desk.add_contact(
        Contact(role=Role.CLIENT, ref_id="client-1", name="Ana", email="ana@example.com", phone="067 123 456")
    )

    print_header("Lifecycle")
    job = print_step(
        "create job",
        desk.create_job(admin, {"client_ref": "client-1", "appliance_ref": "Candy washer CS4", "description": "Does not drain"}),
    )["entity"]
    print_step("assign technician", desk.transition_job(job["id"], "assigned", admin, {"technician_ref": "tech-1"}))
    print_step("start work", desk.transition_job(job["id"], "in_progress", technician))

    order = print_step(
        "request drain pump",
        desk.create_part_order(job["id"], technician, {"part_name": "Drain pump", "manufacturer": "Candy"}),
    )["entity"]
    print_step("order from supplier", desk.transition_part_order(order["id"], "admin_ordered", admin, {"supplier_name": "Com Plus"}))
    print_step("supplier confirmed", desk.transition_part_order(order["id"], "waiting_delivery", admin, {"actual_cost": "38.00"}))
    print_step("part delivered", desk.transition_part_order(order["id"], "available", admin))
    print_step(
        "part installed",
        desk.transition_part_order(order["id"], "consumed", technician, {"consumed_for_service_ref": job["id"]}),
    )
    done = print_step(
        "complete job",
        desk.transition_job(
            job["id"],
            "completed",
            technician,
            {"technician_notes": "Pump replaced, two test cycles", "work_performed": "Drain pump swap"},
        ),
    )

    print(f"\n  Used parts: {', '.join(done['entity']['used_parts_manifest'])}")
    return job["id"], order["id"]


def main():
    """Main entry point for the sample repair harness."""
    parser = argparse.ArgumentParser(
        description="Run a sample repair for end-to-end validation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.example.yaml"),
        help="Path to configuration file (default: config.example.yaml)",
    )
    parser.add_argument(
        "--database",
        type=Path,
        default=Path("data/sample_repair.db"),
        help="Path to SQLite database (default: data/sample_repair.db)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: WARNING)",
    )

    args = parser.parse_args()

    load_dotenv()
    real_run = os.environ.get("SAMPLE_REAL_RUN", "0") == "1"

    print_header("Field Service Coordinator - Sample Repair Harness")
    print(f"Configuration file: {args.config}")
    print(f"Database: {args.database}")
    print("Delivery: " + ("REAL (SMTP and SMS gateway)" if real_run else "patched SMTP, console SMS"))

    if not args.config.exists():
        print(f"\n❌ Error: Configuration file not found: {args.config}")
        return 1

    desk = None
    try:
        app_config, env_config = load_config(args.config)
        app_config.dispatch = app_config.dispatch.model_copy(update={"mode": DispatchMode.INLINE.value})

        configure_logging(
            level=args.log_level,
            format_type=app_config.logging.format if app_config.logging else "key-value",
            environment="validation",
        )

        args.database.parent.mkdir(parents=True, exist_ok=True)
        init_database(f"sqlite:///{args.database.absolute()}")

        sms_provider = None if real_run else ConsoleSMSProvider()
        desk = build_service_desk(app_config, env_config, sms_provider=sms_provider)

        print(f"\nStarted at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        smtp_patch = nullcontext() if real_run else patch("app.notifications.smtp_client.SMTPClient.send")
        with smtp_patch:
            job_id, order_id = run_sample(desk)

        print_summary_table(desk, job_id, order_id)

        print("\n" + "-" * 80)
        print(f"Inspect: sqlite3 {args.database.absolute()} 'SELECT * FROM audit_log;'")
        print(f"To clean up: rm {args.database.absolute()}")
        print("-" * 80 + "\n")
        return 0

    except Exception as e:
        print(f"\n❌ Fatal error: {e}")
        import traceback
        traceback.print_exc()
        return 1
    finally:
        if desk is not None:
            desk.close(wait=True)
        close_database()


if __name__ == "__main__":
    sys.exit(main())
