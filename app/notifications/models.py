"""Data models and exceptions for the notification pipeline.

This module defines the delivery diagnostics, the exceptions raised by the
delivery engines, and the result types collected into a NotificationReport.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class DeliveryDiagnostic(str, Enum):
    """Operator-facing classification of a delivery failure.

    Classification is informational only; it never shortens a retry budget.
    """

    AUTH_FAILURE = "AuthFailure"
    CONNECTION_REFUSED = "ConnectionRefused"
    TIMEOUT = "Timeout"
    TLS_ERROR = "TlsError"
    DNS_FAILURE = "DnsFailure"
    ENVELOPE_ERROR = "EnvelopeError"
    MESSAGE_FORMAT_ERROR = "MessageFormatError"
    UNKNOWN = "Unknown"


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when template rendering fails due to an unknown template or missing variables."""

    pass


class DeliveryError(NotificationError):
    """Raised by a transport when one delivery attempt fails."""

    def __init__(self, message: str, diagnostic: DeliveryDiagnostic = DeliveryDiagnostic.UNKNOWN):
        super().__init__(message)
        self.message = message
        self.diagnostic = diagnostic


class EmailDeliveryError(DeliveryError):
    """SMTP connection, negotiation, or submission failure."""

    pass


class SMSDeliveryError(DeliveryError):
    """SMS provider failure."""

    pass


class InvalidPhoneNumberError(SMSDeliveryError):
    """Raised when a phone number cannot be normalized to E.164."""

    def __init__(self, message: str):
        super().__init__(message, DeliveryDiagnostic.MESSAGE_FORMAT_ERROR)


@dataclass
class EmailDeliveryResult:
    """Outcome of one logical e-mail send (all attempts included).

    Attributes:
        recipient: Address the message was sent to
        succeeded: Whether any attempt was accepted by the server
        attempts: Number of SMTP submissions made (0 if rejected before sending)
        error: Last error message, if the send failed
        diagnostic: Classification of the last error
        route: Label of the SMTP settings used
    """

    recipient: str
    succeeded: bool
    attempts: int
    error: Optional[str] = None
    diagnostic: Optional[DeliveryDiagnostic] = None
    route: Optional[str] = None


@dataclass
class VerificationResult:
    """Outcome of running the SMTP connectivity fallback ladder."""

    succeeded: bool
    route: Optional[str] = None
    tried: List[str] = field(default_factory=list)
    error: Optional[str] = None
    diagnostic: Optional[DeliveryDiagnostic] = None


@dataclass
class SMSDeliveryResult:
    """Outcome of one logical SMS send across all of its segments.

    ``failed_segments`` holds 1-based indices; the send counts as failed if
    any segment failed even when others were delivered.
    """

    phone: str
    succeeded: bool
    attempts: int
    segments: int = 0
    failed_segments: List[int] = field(default_factory=list)
    message_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None
    diagnostic: Optional[DeliveryDiagnostic] = None


@dataclass
class ChannelOutcome:
    """Result of notifying one recipient over one channel."""

    role: str
    channel: str
    template_id: str
    attempted: bool
    succeeded: bool
    recipient: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None
    diagnostic: Optional[DeliveryDiagnostic] = None

    @classmethod
    def skipped(
        cls,
        role: str,
        channel: str,
        template_id: str,
        error: str,
        recipient: Optional[str] = None,
    ) -> "ChannelOutcome":
        """Outcome for a channel that was never attempted."""
        return cls(
            role=role,
            channel=channel,
            template_id=template_id,
            attempted=False,
            succeeded=False,
            recipient=recipient,
            error=error,
        )

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "role": self.role,
            "channel": self.channel,
            "template_id": self.template_id,
            "recipient": self.recipient,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "attempts": self.attempts,
        }
        if self.error:
            data["error"] = self.error
        if self.diagnostic:
            data["diagnostic"] = self.diagnostic.value
        return data


@dataclass
class NotificationReport:
    """Everything the dispatcher did for one lifecycle event.

    ``failed`` is set when the dispatch itself crashed (as opposed to
    individual channels failing), in which case ``outcomes`` may be partial.
    """

    event_type: str
    entity_kind: str
    entity_id: int
    outcomes: List[ChannelOutcome] = field(default_factory=list)
    failed: bool = False
    error: Optional[str] = None

    @property
    def delivered(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed and all(
            outcome.succeeded for outcome in self.outcomes if outcome.attempted
        )

    def as_entries(self) -> List[Dict[str, Any]]:
        """Per-channel entries in the shape returned to callers."""
        return [outcome.as_dict() for outcome in self.outcomes]
