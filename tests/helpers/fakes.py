"""Test doubles: SMTP client, SMS provider, temp database and actors."""

from contextlib import contextmanager
from typing import Callable, Iterable, List, Optional

from app.config.environment import EnvironmentConfig
from app.domain.models import Actor, Role
from app.notifications.models import DeliveryDiagnostic, EmailDeliveryError
from app.notifications.sms_client import ProviderResponse
from app.persistence import close_database, init_database


class RecordingSMTPClient:
    """Stands in for SMTPClient; records every send and probe.

    Args:
        send_errors: Errors raised by successive ``send`` calls before sends succeed
        failing_routes: Route labels whose ``verify`` fails; None makes every probe succeed
    """

    def __init__(
        self,
        send_errors: Iterable[Exception] = (),
        failing_routes: Optional[Iterable[str]] = None,
    ):
        self.send_errors = list(send_errors)
        self.failing_routes = set(failing_routes or ())
        self.sent = []
        self.send_attempts = []
        self.verified = []

    def send(self, message, settings) -> None:
        self.send_attempts.append(settings)
        if self.send_errors:
            raise self.send_errors.pop(0)
        self.sent.append((message, settings))

    def verify(self, settings) -> None:
        self.verified.append(settings)
        if settings.label in self.failing_routes:
            raise EmailDeliveryError(
                f"Connection refused by {settings.host}:{settings.port}",
                DeliveryDiagnostic.CONNECTION_REFUSED,
            )

    @property
    def recipients(self) -> List[str]:
        return [message["To"] for message, _ in self.sent]


class ScriptedSMSProvider:
    """SMS provider returning scripted responses.

    Args:
        responses: Responses returned by successive calls; once exhausted every call succeeds
        fail_when: Predicate on (phone, text); matching calls fail
    """

    def __init__(
        self,
        responses: Iterable[ProviderResponse] = (),
        fail_when: Optional[Callable[[str, str], bool]] = None,
    ):
        self.responses = list(responses)
        self.fail_when = fail_when
        self.calls = []

    def send(self, phone: str, text: str) -> ProviderResponse:
        self.calls.append((phone, text))
        if self.responses:
            return self.responses.pop(0)
        if self.fail_when is not None and self.fail_when(phone, text):
            return ProviderResponse(ok=False, error="gateway rejected segment", diagnostic=DeliveryDiagnostic.UNKNOWN)
        return ProviderResponse(ok=True, provider_message_id=f"msg-{len(self.calls)}")

    @property
    def phones(self) -> List[str]:
        return [phone for phone, _ in self.calls]


def make_env_config(**overrides) -> EnvironmentConfig:
    values = dict(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="desk@example.com",
        smtp_pass="secret",
        smtp_from="desk@example.com",
        smtp_sender_name="Service Desk",
    )
    values.update(overrides)
    return EnvironmentConfig(**values)


@contextmanager
def temp_database(tmp_path):
    """Initialize a file-backed SQLite database under ``tmp_path`` for the block."""
    init_database(f"sqlite:///{tmp_path / 'field_service.db'}")
    try:
        yield
    finally:
        close_database()


def admin_actor() -> Actor:
    return Actor(role=Role.ADMIN, id="admin-1")


def technician_actor(technician_id: str = "tech-1") -> Actor:
    return Actor(role=Role.TECHNICIAN, id=technician_id)
