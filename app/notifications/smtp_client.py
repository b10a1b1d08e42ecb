"""SMTP client wrapper for email delivery.

This module provides a thin wrapper around Python's smtplib with support
for implicit TLS, STARTTLS, relaxed certificate checking, authentication,
and proper connection lifecycle management. Transport failures are raised as
EmailDeliveryError carrying a DeliveryDiagnostic.
"""

import logging
import smtplib
import socket
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Callable, Optional

from email_validator import EmailNotValidError, validate_email

from app.config.environment import EnvironmentConfig

from .models import DeliveryDiagnostic, EmailDeliveryError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20.0


@dataclass(frozen=True)
class SMTPSettings:
    """Immutable SMTP route. Replaced wholesale, never mutated.

    Attributes:
        host: SMTP server hostname
        port: SMTP server port
        secure: True for implicit TLS (SMTP_SSL), False for plain + STARTTLS
        user: Login user, if the server requires authentication
        password: Login password
        verify_certificates: False to accept self-signed or mismatched certificates
        timeout: Socket timeout per connection attempt, in seconds
        label: Name of the fallback strategy that produced these settings
    """

    host: str
    port: int
    secure: bool = False
    user: Optional[str] = None
    password: Optional[str] = None
    verify_certificates: bool = True
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    label: str = "configured"

    @classmethod
    def from_environment(cls, env_config: EnvironmentConfig, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> "SMTPSettings":
        return cls(
            host=env_config.smtp_host,
            port=env_config.smtp_port,
            secure=env_config.smtp_secure,
            user=env_config.smtp_user,
            password=env_config.smtp_pass,
            timeout=timeout,
        )

    def describe(self) -> str:
        mode = "implicit-tls" if self.secure else "starttls"
        certs = "" if self.verify_certificates else ", relaxed-certs"
        return f"{self.label} ({self.host}:{self.port} {mode}{certs})"


def classify_smtp_error(exc: BaseException) -> DeliveryDiagnostic:
    """Map an smtplib/socket exception to a DeliveryDiagnostic."""
    if isinstance(exc, smtplib.SMTPAuthenticationError):
        return DeliveryDiagnostic.AUTH_FAILURE
    if isinstance(exc, (smtplib.SMTPRecipientsRefused, smtplib.SMTPSenderRefused)):
        return DeliveryDiagnostic.ENVELOPE_ERROR
    if isinstance(exc, smtplib.SMTPDataError):
        return DeliveryDiagnostic.MESSAGE_FORMAT_ERROR
    if isinstance(exc, smtplib.SMTPConnectError):
        return DeliveryDiagnostic.CONNECTION_REFUSED
    # SSLError subclasses OSError, so it is checked before the socket errors
    if isinstance(exc, (ssl.SSLError, ssl.CertificateError)):
        return DeliveryDiagnostic.TLS_ERROR
    if isinstance(exc, socket.gaierror):
        return DeliveryDiagnostic.DNS_FAILURE
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return DeliveryDiagnostic.TIMEOUT
    if isinstance(exc, ConnectionRefusedError):
        return DeliveryDiagnostic.CONNECTION_REFUSED
    return DeliveryDiagnostic.UNKNOWN


class SMTPClient:
    """Wrapper around smtplib for sending and probing.

    Handles connection lifecycle, TLS negotiation, and authentication.
    Designed to be easily mockable for testing.
    """

    def __init__(
        self,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        """Initialize SMTP client with optional factory injection.

        Args:
            smtp_factory: Factory function for creating SMTP instances (for mocking)
            smtp_ssl_factory: Factory function for creating SMTP_SSL instances (for mocking)
        """
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    def send(self, message: EmailMessage, settings: SMTPSettings) -> None:
        """Submit one message over a fresh connection.

        Raises:
            EmailDeliveryError: If connecting, negotiating, or submitting fails
        """
        self._run(settings, lambda smtp: smtp.send_message(message), action="delivery")
        logger.debug(f"Message sent successfully to {message['To']} via {settings.describe()}")

    def verify(self, settings: SMTPSettings) -> None:
        """Connect, negotiate, log in and NOOP without sending anything.

        Raises:
            EmailDeliveryError: If the route is not usable
        """
        self._run(settings, lambda smtp: smtp.noop(), action="verification")
        logger.debug(f"SMTP route verified: {settings.describe()}")

    def _run(self, settings: SMTPSettings, operation: Callable, action: str) -> None:
        smtp = None
        try:
            smtp = self._connect(settings)
            if settings.user and settings.password:
                logger.debug(f"Authenticating as {settings.user}")
                smtp.login(settings.user, settings.password)
            operation(smtp)
        except EmailDeliveryError:
            raise
        except smtplib.SMTPException as e:
            error_msg = f"SMTP error during {action}: {e}"
            logger.warning(error_msg)
            raise EmailDeliveryError(error_msg, classify_smtp_error(e)) from e
        except OSError as e:
            error_msg = f"Network error during SMTP {action}: {e}"
            logger.warning(error_msg)
            raise EmailDeliveryError(error_msg, classify_smtp_error(e)) from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except Exception as e:
                    logger.debug(f"Error closing SMTP connection: {e}")

    def _connect(self, settings: SMTPSettings):
        context = _ssl_context(settings.verify_certificates)

        if settings.secure:
            logger.debug(f"Connecting to {settings.host}:{settings.port} with implicit TLS")
            return self.smtp_ssl_factory(
                settings.host, settings.port, timeout=settings.timeout, context=context
            )

        logger.debug(f"Connecting to {settings.host}:{settings.port}")
        smtp = self.smtp_factory(settings.host, settings.port, timeout=settings.timeout)
        try:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                logger.debug("Upgrading connection with STARTTLS")
                smtp.starttls(context=context)
                smtp.ehlo()
        except Exception:
            # _run never sees this connection, so close the socket here
            try:
                smtp.close()
            except Exception as e:
                logger.debug(f"Error closing SMTP connection: {e}")
            raise
        return smtp


def _ssl_context(verify_certificates: bool) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if not verify_certificates:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def validate_recipient(address: Optional[str]) -> str:
    """Validate and normalize a single recipient address.

    Raises:
        EmailDeliveryError: With EnvelopeError diagnostic if the address is invalid
    """
    if not address or not address.strip():
        raise EmailDeliveryError("Recipient address is empty", DeliveryDiagnostic.ENVELOPE_ERROR)
    try:
        return validate_email(address.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise EmailDeliveryError(
            f"Invalid recipient address '{address}': {e}", DeliveryDiagnostic.ENVELOPE_ERROR
        ) from e


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the 'From' header, e.g. ``Service Desk <desk@example.com>``."""
    return formataddr((env_config.smtp_sender_name, env_config.smtp_from))


def build_message(sender: str, recipient: str, subject: str, body: str) -> EmailMessage:
    """Build a plain-text message.

    Raises:
        EmailDeliveryError: With MessageFormatError diagnostic if headers are malformed
    """
    try:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = sender
        message["To"] = recipient
        message.set_content(body)
        return message
    except (ValueError, TypeError) as e:
        raise EmailDeliveryError(
            f"Failed to build email message: {e}", DeliveryDiagnostic.MESSAGE_FORMAT_ERROR
        ) from e
