"""ServiceDesk: the inbound control surface.

Wires the lifecycle services to the notification pipeline and returns, for
every operation, the committed entity together with the handle of its
notification dispatch. Whether the transition succeeded and which
notifications went out are reported separately.
"""

import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from app.config.environment import EnvironmentConfig
from app.config.models import AppConfig, SMSConfig
from app.domain.models import Actor, AuditEntry, Contact
from app.lifecycle import AuditTrail, JobLifecycleService, PartOrderService, SupplierRouter, TransitionResult
from app.logging import get_logger
from app.notifications import (
    ConsoleSMSProvider,
    DispatchQueue,
    EmailDeliveryEngine,
    FailoverSMSProvider,
    HTTPSMSProvider,
    MessageComposer,
    NotificationDispatcher,
    NotificationTicket,
    SMSDeliveryEngine,
    SMSProvider,
    SMTPClient,
    SQLContactDirectory,
    VerificationResult,
)
from app.scheduler import ProbeScheduler

logger = get_logger(__name__, component="desk")


@dataclass
class DeskResult:
    """Committed entity plus the ticket for its notifications.

    ``ticket`` is None when nothing changed (idempotent re-entry) or the
    event could not be queued. ``linked`` holds results for other entities
    the operation moved, such as a job parked by a new part order.
    """

    entity: Any
    ticket: Optional[NotificationTicket] = None
    linked: List["DeskResult"] = field(default_factory=list)

    @classmethod
    def from_transition(cls, result: TransitionResult) -> "DeskResult":
        return cls(
            entity=result.entity,
            ticket=result.ticket,
            linked=[cls.from_transition(linked) for linked in result.linked],
        )

    @property
    def changed(self) -> bool:
        return self.ticket is not None

    def as_dict(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Serialize, waiting up to ``timeout`` seconds for each notification report."""
        data: Dict[str, Any] = {
            "entity": self.entity.model_dump(mode="json"),
            "notifications": [],
        }

        if self.ticket is not None:
            try:
                report = self.ticket.report(timeout=timeout)
            except FutureTimeoutError:
                data["notifications_pending"] = True
            else:
                data["notifications"] = report.as_entries()
                if report.failed:
                    data["notification_error"] = report.error

        if self.linked:
            data["linked"] = [linked.as_dict(timeout) for linked in self.linked]
        return data


class ServiceDesk:
    """Facade over job and part-order operations."""

    def __init__(
        self,
        jobs: JobLifecycleService,
        part_orders: PartOrderService,
        queue: DispatchQueue,
        directory: SQLContactDirectory,
        audit: AuditTrail,
        email_engine: Optional[EmailDeliveryEngine] = None,
        probe_interval_minutes: int = 0,
    ):
        self.jobs = jobs
        self.part_orders = part_orders
        self.queue = queue
        self.directory = directory
        self.audit = audit
        self.email_engine = email_engine
        self.probe_interval_minutes = probe_interval_minutes
        self.probe_scheduler: Optional[ProbeScheduler] = None

    def create_job(self, actor: Actor, payload: Mapping[str, Any]) -> DeskResult:
        return DeskResult.from_transition(self.jobs.create(actor, payload))

    def transition_job(
        self,
        job_id: int,
        target: str,
        actor: Actor,
        payload: Optional[Mapping[str, Any]] = None,
        expected_status: Optional[str] = None,
    ) -> DeskResult:
        return DeskResult.from_transition(
            self.jobs.transition(job_id, target, actor, payload, expected_status=expected_status)
        )

    def create_part_order(self, job_id: int, actor: Actor, payload: Mapping[str, Any]) -> DeskResult:
        return DeskResult.from_transition(self.part_orders.create(job_id, actor, payload))

    def transition_part_order(
        self,
        order_id: int,
        target: str,
        actor: Actor,
        payload: Optional[Mapping[str, Any]] = None,
        expected_status: Optional[str] = None,
    ) -> DeskResult:
        return DeskResult.from_transition(
            self.part_orders.transition(order_id, target, actor, payload, expected_status=expected_status)
        )

    def add_contact(self, contact: Contact) -> Contact:
        return self.directory.add(contact)

    def audit_entries(self, entity_kind: str, entity_id: int) -> List[AuditEntry]:
        return self.audit.entries_for(entity_kind, entity_id)

    def verify_email(self) -> VerificationResult:
        """Run the SMTP fallback ladder now.

        Raises:
            RuntimeError: If the e-mail channel is disabled
        """
        if self.email_engine is None:
            raise RuntimeError("E-mail channel is disabled")
        return self.email_engine.verify()

    def start_probe(self, run_immediately: bool = True) -> Optional[ProbeScheduler]:
        """Start the periodic SMTP probe if an interval is configured."""
        if self.email_engine is None or self.probe_interval_minutes <= 0:
            logger.info("Periodic SMTP probe disabled", extra={"event": "desk.probe.disabled"})
            return None
        self.probe_scheduler = ProbeScheduler(self.email_engine.verify, self.probe_interval_minutes)
        self.probe_scheduler.start(run_immediately=run_immediately)
        return self.probe_scheduler

    def close(self, wait: bool = True) -> None:
        """Stop the probe and drain queued dispatches."""
        if self.probe_scheduler is not None:
            self.probe_scheduler.shutdown(wait=wait)
            self.probe_scheduler = None
        self.queue.shutdown(wait=wait)


def build_sms_provider(
    env_config: EnvironmentConfig,
    sms_config: SMSConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> SMSProvider:
    """HTTP gateway when SMS_API_URL and SMS_API_KEY are set, console logging otherwise.

    With SMS_FALLBACK_API_URL/SMS_FALLBACK_API_KEY also set (and
    ``sms.enable_fallback`` on), failed sends are retried on the second
    gateway after ``sms.fallback_delay_seconds``.
    """
    if not env_config.sms_configured:
        logger.warning(
            "SMS gateway not configured; SMS will be logged only",
            extra={"event": "desk.sms.console_provider"},
        )
        return ConsoleSMSProvider()

    primary = HTTPSMSProvider(
        api_url=env_config.sms_api_url,
        api_key=env_config.sms_api_key,
        sender_id=env_config.sms_sender_id,
        timeout=sms_config.request_timeout_seconds,
    )
    if not (sms_config.enable_fallback and env_config.sms_fallback_configured):
        return primary

    logger.info(
        f"SMS fallback gateway enabled (delay {sms_config.fallback_delay_seconds}s)",
        extra={"event": "desk.sms.fallback_enabled"},
    )
    fallback = HTTPSMSProvider(
        api_url=env_config.sms_fallback_api_url,
        api_key=env_config.sms_fallback_api_key,
        sender_id=env_config.sms_sender_id,
        timeout=sms_config.request_timeout_seconds,
    )
    return FailoverSMSProvider(primary, fallback, delay_seconds=sms_config.fallback_delay_seconds, sleep=sleep)


def build_service_desk(
    app_config: AppConfig,
    env_config: EnvironmentConfig,
    directory=None,
    smtp_client: Optional[SMTPClient] = None,
    sms_provider: Optional[SMSProvider] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ServiceDesk:
    """Assemble a ServiceDesk from configuration.

    The database must already be initialized (``init_database``).

    Args:
        app_config: Application configuration
        env_config: Environment configuration (SMTP, SMS gateway)
        directory: Contact directory (SQL-backed if None)
        smtp_client: SMTP client (real smtplib-based client if None)
        sms_provider: SMS provider (chosen from the environment if None)
        sleep: Wait function for retry delays (injectable for tests)
    """
    audit = AuditTrail()
    directory = directory or SQLContactDirectory()

    email_engine = None
    if app_config.email.enabled:
        email_engine = EmailDeliveryEngine(env_config, app_config.email, smtp_client=smtp_client, sleep=sleep)

    sms_engine = None
    if app_config.sms.enabled:
        provider = sms_provider or build_sms_provider(env_config, app_config.sms, sleep=sleep)
        sms_engine = SMSDeliveryEngine(provider, app_config.sms, sleep=sleep)

    dispatcher = NotificationDispatcher(
        directory,
        email_engine=email_engine,
        sms_engine=sms_engine,
        composer=MessageComposer(),
        audit=audit,
    )
    queue = DispatchQueue(
        dispatcher,
        mode=app_config.dispatch.mode,
        workers=app_config.dispatch.workers,
        audit=audit,
    )

    jobs = JobLifecycleService(publisher=queue.submit, audit=audit)
    part_orders = PartOrderService(
        jobs,
        router=SupplierRouter(app_config.suppliers),
        publisher=queue.submit,
        audit=audit,
    )

    logger.info(
        "Service desk ready",
        extra={
            "event": "desk.ready",
            "dispatch_mode": str(app_config.dispatch.mode),
            "email_enabled": email_engine is not None,
            "sms_enabled": sms_engine is not None,
        },
    )

    return ServiceDesk(
        jobs=jobs,
        part_orders=part_orders,
        queue=queue,
        directory=directory,
        audit=audit,
        email_engine=email_engine,
        probe_interval_minutes=app_config.email.verify_interval_minutes,
    )
