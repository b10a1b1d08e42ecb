"""Notification dispatch: audience resolution, channel fan-out and the worker pool.

The dispatcher turns one LifecycleEvent into per-recipient, per-channel sends
and collects every outcome into a NotificationReport. No failure of one
recipient or channel stops the others, and every outcome is audited.

DispatchQueue runs the dispatcher off the request path. ``submit`` returns a
NotificationTicket immediately; callers that want the report wait on it.
"""

import contextvars
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional, Tuple

from app.config.models import DispatchMode
from app.domain.models import Channel, Contact, Role
from app.lifecycle.events import LifecycleEvent
from app.logging import get_logger
from app.logging.context import log_context

from .audience import AudienceRule, audience_for
from .contacts import ContactDirectory
from .email_engine import EmailDeliveryEngine
from .models import ChannelOutcome, NotificationReport, NotificationTemplateError
from .payloads import build_message_data
from .sms_engine import SMSDeliveryEngine
from .templates import ComposedMessage, MessageComposer

logger = get_logger(__name__, component="dispatcher")

CONTACT_NOT_FOUND = "contact not found"
NO_SUPPLIER_ADDRESS = "no supplier address configured"


class NotificationDispatcher:
    """Fans a lifecycle event out to its audience over e-mail and SMS."""

    def __init__(
        self,
        directory: ContactDirectory,
        email_engine: Optional[EmailDeliveryEngine] = None,
        sms_engine: Optional[SMSDeliveryEngine] = None,
        composer: Optional[MessageComposer] = None,
        audit=None,
    ):
        """Initialize the dispatcher.

        Args:
            directory: Contact directory used to resolve recipients
            email_engine: E-mail engine, or None if the channel is disabled
            sms_engine: SMS engine, or None if the channel is disabled
            composer: Message composer (creates default if None)
            audit: Object with ``record_notification(event, outcome)``; None disables auditing
        """
        self.directory = directory
        self.email_engine = email_engine
        self.sms_engine = sms_engine
        self.composer = composer or MessageComposer()
        self.audit = audit

    def dispatch(self, event: LifecycleEvent) -> NotificationReport:
        report = NotificationReport(
            event_type=event.event_type.value,
            entity_kind=event.entity_kind,
            entity_id=event.entity_id,
        )

        with log_context(
            event_type=event.event_type.value,
            entity_kind=event.entity_kind,
            entity_id=event.entity_id,
        ):
            for rule in audience_for(event):
                for outcome in self._notify_role(rule, event):
                    report.outcomes.append(outcome)
                    self._audit(event, outcome)

            logger.info(
                f"Dispatched {event.event_type.value}: {report.delivered}/{len(report.outcomes)} "
                f"channel(s) delivered",
                extra={"event": "dispatch.completed", "delivered": report.delivered},
            )
        return report

    def _notify_role(self, rule: AudienceRule, event: LifecycleEvent) -> List[ChannelOutcome]:
        role = rule.role.value
        try:
            contacts, error = self._resolve(rule.role, event)
        except Exception as e:
            logger.error(
                f"Recipient lookup failed for role {role}: {e}",
                exc_info=True,
                extra={"event": "dispatch.lookup_failed", "role": role},
            )
            return self._skip_all(role, rule.template_id, f"contact lookup failed: {e}")

        if error:
            logger.warning(
                f"No {role} recipient for {event.event_type.value}: {error}",
                extra={"event": "dispatch.recipient_missing", "role": role},
            )
            return self._skip_all(role, rule.template_id, error)

        outcomes: List[ChannelOutcome] = []
        for contact in contacts:
            outcomes.extend(self._notify_contact(rule, contact, event))
        return outcomes

    def _resolve(self, role: Role, event: LifecycleEvent) -> Tuple[List[Contact], Optional[str]]:
        job = event.job

        if role == Role.ADMIN:
            members = self.directory.members(Role.ADMIN)
            return members, None if members else CONTACT_NOT_FOUND

        if role == Role.SUPPLIER:
            supplier = event.supplier
            if supplier is None or not supplier.resolved:
                return [], NO_SUPPLIER_ADDRESS
            return [
                Contact(
                    role=Role.SUPPLIER,
                    ref_id=supplier.name,
                    name=supplier.name,
                    email=supplier.email,
                    phone=supplier.phone,
                )
            ], None

        if role == Role.CLIENT:
            ref = job.client_ref
        elif role == Role.TECHNICIAN:
            ref = job.technician_ref or (event.part_order.technician_ref if event.part_order else None)
        elif role == Role.BUSINESS_PARTNER:
            ref = job.business_partner_ref
        else:
            ref = None

        contact = self.directory.lookup(role, ref) if ref else None
        if contact is None:
            return [], CONTACT_NOT_FOUND
        return [contact], None

    def _notify_contact(self, rule: AudienceRule, contact: Contact, event: LifecycleEvent) -> List[ChannelOutcome]:
        role = rule.role.value
        try:
            message = self.composer.compose(rule.template_id, build_message_data(event, contact))
        except NotificationTemplateError as e:
            logger.error(
                f"Could not compose {rule.template_id} for {role} {contact.ref_id}: {e}",
                extra={"event": "dispatch.compose_failed", "template_id": rule.template_id},
            )
            return self._skip_all(role, rule.template_id, str(e))

        return [
            self._send_email(role, rule.template_id, contact, message),
            self._send_sms(role, rule.template_id, contact, message),
        ]

    def _send_email(self, role: str, template_id: str, contact: Contact, message: ComposedMessage) -> ChannelOutcome:
        channel = Channel.EMAIL.value
        if self.email_engine is None:
            return ChannelOutcome.skipped(role, channel, template_id, "email channel disabled")
        if not contact.email:
            return ChannelOutcome.skipped(role, channel, template_id, "no email address on file")

        with log_context(channel=channel, role=role):
            try:
                result = self.email_engine.send(contact.email, message.subject, message.body)
            except Exception as e:
                logger.error(f"E-mail engine crashed: {e}", exc_info=True, extra={"event": "dispatch.channel_crashed"})
                return ChannelOutcome(role, channel, template_id, True, False, contact.email, error=str(e))

        return ChannelOutcome(
            role=role,
            channel=channel,
            template_id=template_id,
            attempted=True,
            succeeded=result.succeeded,
            recipient=result.recipient,
            attempts=result.attempts,
            error=result.error,
            diagnostic=result.diagnostic,
        )

    def _send_sms(self, role: str, template_id: str, contact: Contact, message: ComposedMessage) -> ChannelOutcome:
        channel = Channel.SMS.value
        if self.sms_engine is None:
            return ChannelOutcome.skipped(role, channel, template_id, "sms channel disabled")
        if not contact.phone:
            return ChannelOutcome.skipped(role, channel, template_id, "no phone number on file")

        with log_context(channel=channel, role=role):
            try:
                result = self.sms_engine.send(contact.phone, message.sms_text)
            except Exception as e:
                logger.error(f"SMS engine crashed: {e}", exc_info=True, extra={"event": "dispatch.channel_crashed"})
                return ChannelOutcome(role, channel, template_id, True, False, contact.phone, error=str(e))

        return ChannelOutcome(
            role=role,
            channel=channel,
            template_id=template_id,
            attempted=True,
            succeeded=result.succeeded,
            recipient=result.phone,
            attempts=result.attempts,
            error=result.error,
            diagnostic=result.diagnostic,
        )

    @staticmethod
    def _skip_all(role: str, template_id: str, error: str) -> List[ChannelOutcome]:
        return [ChannelOutcome.skipped(role, channel.value, template_id, error) for channel in Channel]

    def _audit(self, event: LifecycleEvent, outcome: ChannelOutcome) -> None:
        if self.audit is None:
            return
        try:
            self.audit.record_notification(event, outcome)
        except Exception as e:
            logger.error(f"Failed to audit notification outcome: {e}", exc_info=True)


class NotificationTicket:
    """Handle for a submitted dispatch."""

    def __init__(self, event: LifecycleEvent, future: Future):
        self.event = event
        self._future = future

    def done(self) -> bool:
        return self._future.done()

    def report(self, timeout: Optional[float] = None) -> NotificationReport:
        """Wait for and return the report.

        Raises:
            concurrent.futures.TimeoutError: If the dispatch is still running after ``timeout``
        """
        return self._future.result(timeout=timeout)


class DispatchQueue:
    """Runs dispatches on a worker pool, or inline when configured to.

    A crash inside a dispatch is logged, audited as ``dispatch_failed`` and
    surfaces as a failed report; it never reaches the submitter.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        mode: DispatchMode = DispatchMode.BACKGROUND,
        workers: int = 4,
        audit=None,
    ):
        self.dispatcher = dispatcher
        self.mode = DispatchMode(mode)
        self.audit = audit
        self._executor: Optional[ThreadPoolExecutor] = None
        self._closed = False
        if self.mode == DispatchMode.BACKGROUND:
            self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dispatch")

    def submit(self, event: LifecycleEvent) -> NotificationTicket:
        if self._closed:
            raise RuntimeError("DispatchQueue has been shut down")
        if self._executor is None:
            future: Future = Future()
            future.set_result(self._run(event))
            return NotificationTicket(event, future)

        # Workers inherit the caller's log context
        context = contextvars.copy_context()
        future = self._executor.submit(context.run, self._run, event)
        logger.debug(
            f"Queued dispatch of {event.event_type.value}",
            extra={"event": "dispatch.queued", "event_type": event.event_type.value},
        )
        return NotificationTicket(event, future)

    def shutdown(self, wait: bool = True) -> None:
        self._closed = True
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def _run(self, event: LifecycleEvent) -> NotificationReport:
        try:
            return self.dispatcher.dispatch(event)
        except Exception as e:
            logger.error(
                f"Dispatch of {event.event_type.value} for {event.entity_kind} {event.entity_id} crashed: {e}",
                exc_info=True,
                extra={"event": "dispatch.failed", "event_type": event.event_type.value},
            )
            if self.audit is not None:
                try:
                    self.audit.record_dispatch_failure(event, str(e))
                except Exception as audit_error:
                    logger.error(f"Failed to audit dispatch failure: {audit_error}")
            return NotificationReport(
                event_type=event.event_type.value,
                entity_kind=event.entity_kind,
                entity_id=event.entity_id,
                failed=True,
                error=str(e),
            )
