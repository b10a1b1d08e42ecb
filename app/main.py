"""Command-line entry point for the field service coordinator."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import os
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from app.config.environment import EnvironmentConfig
from app.config.exceptions import ConfigurationError
from app.config.loader import load_config
from app.config.models import AppConfig, DispatchMode
from app.desk import ServiceDesk, build_service_desk
from app.domain.exceptions import DomainError
from app.domain.models import Actor, Contact, Role
from app.logging import get_logger
from app.logging.config import configure_logging
from app.persistence import PersistenceError, close_database, init_database

logger = get_logger(__name__, component="cli")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_REJECTED = 2

ACTOR_ROLES = [Role.ADMIN.value, Role.TECHNICIAN.value, Role.BUSINESS_PARTNER.value, Role.SYSTEM.value]


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Priority: CLI > environment > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif env_config.log_level:
        pass
    elif app_config.logging and app_config.logging.level:
        env_config.log_level = app_config.logging.level
    else:
        env_config.log_level = "INFO"

    # One-shot commands wait for their notification report
    app_config.dispatch = app_config.dispatch.model_copy(update={"mode": DispatchMode.INLINE.value})

    return app_config, env_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Field Service Coordinator - job and spare-part lifecycle with e-mail/SMS notifications"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml if present)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    parser.add_argument("--actor-role", default=Role.ADMIN.value, choices=ACTOR_ROLES, help="Role of the caller")
    parser.add_argument("--actor-id", default=None, help="Contact id of the caller (required for technicians and partners)")

    commands = parser.add_subparsers(dest="command", required=True)

    create_job = commands.add_parser("create-job", help="Register a new service job")
    create_job.add_argument("--client-ref", required=True)
    create_job.add_argument("--appliance-ref", required=True)
    create_job.add_argument("--description")
    create_job.add_argument("--technician-ref")
    create_job.add_argument("--partner-ref", dest="business_partner_ref")
    create_job.add_argument("--warranty", dest="warranty_status", choices=["in_warranty", "out_of_warranty", "unknown"])

    transition_job = commands.add_parser("transition-job", help="Move a job to a new status")
    transition_job.add_argument("job_id", type=int)
    transition_job.add_argument("target")
    transition_job.add_argument("--expected-status")
    transition_job.add_argument("--technician-ref")
    transition_job.add_argument("--scheduled-at", help="ISO-8601 timestamp")
    transition_job.add_argument("--reason")
    transition_job.add_argument("--notes", dest="technician_notes")
    transition_job.add_argument("--work-performed")
    transition_job.add_argument("--not-fixed", action="store_true", help="Record the repair as partial")
    transition_job.add_argument("--cost")

    create_order = commands.add_parser("create-part-order", help="Request a spare part for a job")
    create_order.add_argument("job_id", type=int)
    create_order.add_argument("--part-name", required=True)
    create_order.add_argument("--part-number")
    create_order.add_argument("--manufacturer")
    create_order.add_argument("--quantity", type=int)
    create_order.add_argument("--urgency", choices=["normal", "high", "urgent"])
    create_order.add_argument("--supplier", dest="supplier_name")
    create_order.add_argument("--expected-delivery", help="ISO-8601 timestamp")
    create_order.add_argument("--admin-notes")
    create_order.add_argument("--direct-order", action="store_true", help="Order from the supplier immediately (admin)")

    transition_order = commands.add_parser("transition-part-order", help="Move a part order to a new status")
    transition_order.add_argument("order_id", type=int)
    transition_order.add_argument("target")
    transition_order.add_argument("--expected-status")
    transition_order.add_argument("--supplier", dest="supplier_name")
    transition_order.add_argument("--actual-cost")
    transition_order.add_argument("--expected-delivery", help="ISO-8601 timestamp")
    transition_order.add_argument("--consumed-for", dest="consumed_for_service_ref", type=int)
    transition_order.add_argument("--admin-notes")

    add_contact = commands.add_parser("add-contact", help="Add or update a directory contact")
    add_contact.add_argument("role", choices=[Role.ADMIN.value, Role.TECHNICIAN.value, Role.CLIENT.value, Role.BUSINESS_PARTNER.value])
    add_contact.add_argument("ref_id")
    add_contact.add_argument("name")
    add_contact.add_argument("--email")
    add_contact.add_argument("--phone")

    history = commands.add_parser("history", help="Show the audit trail of a job or part order")
    history.add_argument("entity_kind", choices=["job", "part_order"])
    history.add_argument("entity_id", type=int)

    commands.add_parser("verify-email", help="Probe the SMTP fallback ladder and report the working route")
    commands.add_parser("watch-email", help="Keep probing SMTP on the configured interval until stopped")

    return parser


def _payload(args: argparse.Namespace, fields: List[str]) -> Dict[str, Any]:
    payload = {}
    for name in fields:
        value = getattr(args, name, None)
        if value is not None and value is not False:
            payload[name] = value
    return payload


def run_command(args: argparse.Namespace, desk: ServiceDesk, wait_seconds: Optional[float] = None) -> Dict[str, Any]:
    """Execute one subcommand and return its JSON-serializable result.

    Raises:
        DomainError: If the lifecycle rejected the request
    """
    actor = Actor(role=args.actor_role, id=args.actor_id)

    if args.command == "create-job":
        payload = _payload(
            args,
            ["client_ref", "appliance_ref", "description", "technician_ref", "business_partner_ref", "warranty_status"],
        )
        return desk.create_job(actor, payload).as_dict(wait_seconds)

    if args.command == "transition-job":
        payload = _payload(
            args,
            ["technician_ref", "scheduled_at", "reason", "technician_notes", "work_performed", "cost"],
        )
        if args.not_fixed:
            payload["is_completely_fixed"] = False
        return desk.transition_job(
            args.job_id, args.target, actor, payload, expected_status=args.expected_status
        ).as_dict(wait_seconds)

    if args.command == "create-part-order":
        payload = _payload(
            args,
            [
                "part_name",
                "part_number",
                "manufacturer",
                "quantity",
                "urgency",
                "supplier_name",
                "expected_delivery",
                "admin_notes",
                "direct_order",
            ],
        )
        return desk.create_part_order(args.job_id, actor, payload).as_dict(wait_seconds)

    if args.command == "transition-part-order":
        payload = _payload(
            args,
            ["supplier_name", "actual_cost", "expected_delivery", "consumed_for_service_ref", "admin_notes"],
        )
        return desk.transition_part_order(
            args.order_id, args.target, actor, payload, expected_status=args.expected_status
        ).as_dict(wait_seconds)

    if args.command == "add-contact":
        contact = desk.add_contact(
            Contact(role=args.role, ref_id=args.ref_id, name=args.name, email=args.email, phone=args.phone)
        )
        return {"contact": contact.model_dump(mode="json")}

    if args.command == "history":
        entries = desk.audit_entries(args.entity_kind, args.entity_id)
        return {"entries": [entry.model_dump(mode="json") for entry in entries]}

    if args.command == "verify-email":
        result = desk.verify_email()
        return {
            "succeeded": result.succeeded,
            "route": result.route,
            "tried": result.tried,
            "error": result.error,
            "diagnostic": result.diagnostic.value if result.diagnostic else None,
        }

    raise ValueError(f"Unknown command: {args.command}")


def watch_email(desk: ServiceDesk, start_time: float) -> int:
    """Run the periodic SMTP probe until SIGINT/SIGTERM."""
    shutdown_event = threading.Event()

    scheduler = desk.start_probe(run_immediately=True)
    if scheduler is None:
        print("Periodic probe disabled: set email.verify_interval_minutes > 0", file=sys.stderr)
        return EXIT_FAILURE
    scheduler.shutdown_event = shutdown_event

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        scheduler.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("Probe scheduler started. Press Ctrl+C to stop", extra={"event": "service.watch_mode.started"})

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down", extra={"event": "service.keyboard_interrupt"})
        scheduler.shutdown(wait=False)

    logger.info(
        "Field Service Coordinator stopped",
        extra={"event": "service.stopping", "uptime_seconds": round(time.time() - start_time, 2)},
    )
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        0 on success, 1 on configuration or unexpected failure, 2 when the
        lifecycle rejected the request.
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    desk = None
    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        log_format = app_config.logging.format if app_config.logging else "key-value"
        environment = os.environ.get("ENVIRONMENT", "local")
        configure_logging(level=env_config.log_level, format_type=log_format, environment=environment)

        logger.info(
            "Field Service Coordinator starting",
            extra={
                "event": "service.starting",
                "command": args.command,
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
            },
        )

        init_database(env_config.database_url)
        desk = build_service_desk(app_config, env_config)

        if args.command == "watch-email":
            return watch_email(desk, start_time)

        output = run_command(args, desk)
        print(json.dumps(output, indent=2, ensure_ascii=False))

        if args.command == "verify-email" and not output["succeeded"]:
            return EXIT_FAILURE
        return EXIT_OK

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return EXIT_FAILURE
    except DomainError as e:
        print(json.dumps({"error": type(e).__name__, "message": str(e)}), file=sys.stderr)
        logger.warning(
            f"Request rejected: {e}",
            extra={"event": "service.request_rejected", "error_type": type(e).__name__},
        )
        return EXIT_REJECTED
    except PersistenceError as e:
        print(f"Database error: {e}", file=sys.stderr)
        logger.error(f"Database error: {e}", extra={"event": "service.database_error"})
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return EXIT_OK
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={
                "event": "service.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return EXIT_FAILURE
    finally:
        if desk is not None:
            desk.close(wait=True)
        close_database()


if __name__ == "__main__":
    sys.exit(main())
