"""Notification pipeline for lifecycle events.

This package provides:
- NotificationDispatcher: resolves the audience of an event and fans out sends
- DispatchQueue / NotificationTicket: background dispatch and its handle
- EmailDeliveryEngine: SMTP delivery with retry/backoff and route fallback
- SMSDeliveryEngine: phone normalization, GSM-7/UCS-2 segmentation and per-segment retry
- SMS providers: HTTP gateway, console, and primary/fallback failover
- MessageComposer: Jinja2 rendering of e-mail and SMS content
- Contact directories: SQL-backed and in-memory recipient lookup
"""

from .audience import AUDIENCE_TABLE, AudienceRule, audience_for
from .contacts import ContactDirectory, SQLContactDirectory, StaticContactDirectory
from .dispatcher import DispatchQueue, NotificationDispatcher, NotificationTicket
from .email_engine import EmailDeliveryEngine, fallback_ladder
from .models import (
    ChannelOutcome,
    DeliveryDiagnostic,
    DeliveryError,
    EmailDeliveryError,
    EmailDeliveryResult,
    InvalidPhoneNumberError,
    NotificationError,
    NotificationReport,
    NotificationTemplateError,
    SMSDeliveryError,
    SMSDeliveryResult,
    VerificationResult,
)
from .sms_client import ConsoleSMSProvider, FailoverSMSProvider, HTTPSMSProvider, ProviderResponse, SMSProvider
from .sms_engine import SMSDeliveryEngine, is_gsm7, normalize_phone, split_message, transliterate
from .smtp_client import SMTPClient, SMTPSettings, classify_smtp_error
from .templates import ComposedMessage, MessageComposer

__all__ = [
    # Dispatch
    "NotificationDispatcher",
    "DispatchQueue",
    "NotificationTicket",
    "AUDIENCE_TABLE",
    "AudienceRule",
    "audience_for",
    # Recipients
    "ContactDirectory",
    "SQLContactDirectory",
    "StaticContactDirectory",
    # Engines and transports
    "EmailDeliveryEngine",
    "fallback_ladder",
    "SMTPClient",
    "SMTPSettings",
    "classify_smtp_error",
    "SMSDeliveryEngine",
    "SMSProvider",
    "HTTPSMSProvider",
    "ConsoleSMSProvider",
    "FailoverSMSProvider",
    "ProviderResponse",
    "normalize_phone",
    "split_message",
    "is_gsm7",
    "transliterate",
    # Composition
    "MessageComposer",
    "ComposedMessage",
    # Models and results
    "DeliveryDiagnostic",
    "ChannelOutcome",
    "NotificationReport",
    "EmailDeliveryResult",
    "SMSDeliveryResult",
    "VerificationResult",
    # Exceptions
    "NotificationError",
    "NotificationTemplateError",
    "DeliveryError",
    "EmailDeliveryError",
    "SMSDeliveryError",
    "InvalidPhoneNumberError",
]
