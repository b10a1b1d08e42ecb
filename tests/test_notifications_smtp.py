"""Unit tests for the SMTP client wrapper.

Tests the SMTPClient for:
- Connection handling (SMTP and SMTP_SSL)
- STARTTLS negotiation and relaxed certificates
- Authentication (with and without credentials)
- Error classification into delivery diagnostics
- Recipient validation and message building
"""

import smtplib
import socket
import ssl
from email.message import EmailMessage
from unittest.mock import MagicMock, Mock

import pytest

from app.notifications.models import DeliveryDiagnostic, EmailDeliveryError
from app.notifications.smtp_client import (
    SMTPClient,
    SMTPSettings,
    build_message,
    build_sender_address,
    classify_smtp_error,
    validate_recipient,
)
from tests.helpers import make_env_config


@pytest.fixture
def settings():
    return SMTPSettings(host="smtp.example.com", port=587, user="desk@example.com", password="secret", timeout=5.0)


@pytest.fixture
def sample_message():
    msg = EmailMessage()
    msg["Subject"] = "Job #12 completed"
    msg["From"] = "desk@example.com"
    msg["To"] = "client@example.com"
    msg.set_content("Your appliance is repaired.")
    return msg


@pytest.fixture
def mock_smtp():
    smtp = MagicMock()
    smtp.has_extn.return_value = True
    return smtp


def make_client(mock_smtp):
    smtp_factory = Mock(return_value=mock_smtp)
    ssl_factory = Mock(return_value=mock_smtp)
    return SMTPClient(smtp_factory=smtp_factory, smtp_ssl_factory=ssl_factory), smtp_factory, ssl_factory


class TestSMTPClientSend:
    """Tests for SMTPClient.send."""

    def test_starttls_login_and_send(self, settings, sample_message, mock_smtp):
        client, smtp_factory, ssl_factory = make_client(mock_smtp)

        client.send(sample_message, settings)

        smtp_factory.assert_called_once_with("smtp.example.com", 587, timeout=5.0)
        ssl_factory.assert_not_called()
        mock_smtp.starttls.assert_called_once()
        mock_smtp.login.assert_called_once_with("desk@example.com", "secret")
        mock_smtp.send_message.assert_called_once_with(sample_message)
        mock_smtp.quit.assert_called_once()

    def test_no_starttls_when_not_offered(self, settings, sample_message, mock_smtp):
        mock_smtp.has_extn.return_value = False
        client, _, _ = make_client(mock_smtp)

        client.send(sample_message, settings)

        mock_smtp.starttls.assert_not_called()

    def test_no_login_without_credentials(self, sample_message, mock_smtp):
        client, _, _ = make_client(mock_smtp)

        client.send(sample_message, SMTPSettings(host="relay.example.com", port=25))

        mock_smtp.login.assert_not_called()
        mock_smtp.send_message.assert_called_once()

    def test_implicit_tls(self, sample_message, mock_smtp):
        client, smtp_factory, ssl_factory = make_client(mock_smtp)

        client.send(sample_message, SMTPSettings(host="smtp.example.com", port=465, secure=True))

        smtp_factory.assert_not_called()
        args, kwargs = ssl_factory.call_args
        assert args == ("smtp.example.com", 465)
        assert isinstance(kwargs["context"], ssl.SSLContext)

    def test_relaxed_certificates(self, sample_message, mock_smtp):
        client, _, ssl_factory = make_client(mock_smtp)

        client.send(
            sample_message,
            SMTPSettings(host="smtp.example.com", port=465, secure=True, verify_certificates=False),
        )

        context = ssl_factory.call_args.kwargs["context"]
        assert context.verify_mode == ssl.CERT_NONE
        assert context.check_hostname is False

    def test_auth_failure(self, settings, sample_message, mock_smtp):
        mock_smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"Authentication failed")
        client, _, _ = make_client(mock_smtp)

        with pytest.raises(EmailDeliveryError) as exc_info:
            client.send(sample_message, settings)

        assert exc_info.value.diagnostic == DeliveryDiagnostic.AUTH_FAILURE
        mock_smtp.send_message.assert_not_called()
        mock_smtp.quit.assert_called_once()

    def test_connection_refused(self, settings, sample_message):
        client = SMTPClient(smtp_factory=Mock(side_effect=ConnectionRefusedError("refused")))

        with pytest.raises(EmailDeliveryError) as exc_info:
            client.send(sample_message, settings)

        assert exc_info.value.diagnostic == DeliveryDiagnostic.CONNECTION_REFUSED

    def test_failed_starttls_closes_connection(self, settings, sample_message, mock_smtp):
        mock_smtp.starttls.side_effect = ssl.SSLError("certificate verify failed")
        client, _, _ = make_client(mock_smtp)

        with pytest.raises(EmailDeliveryError):
            client.send(sample_message, settings)

        mock_smtp.close.assert_called_once()
        mock_smtp.login.assert_not_called()
        mock_smtp.send_message.assert_not_called()

    def test_failed_greeting_closes_connection(self, settings, mock_smtp):
        mock_smtp.ehlo.side_effect = smtplib.SMTPServerDisconnected("Connection unexpectedly closed")
        mock_smtp.close.side_effect = OSError("already closed")
        client, _, _ = make_client(mock_smtp)

        with pytest.raises(EmailDeliveryError):
            client.verify(settings)

        mock_smtp.close.assert_called_once()

    def test_quit_errors_are_ignored(self, settings, sample_message, mock_smtp):
        mock_smtp.quit.side_effect = smtplib.SMTPServerDisconnected("gone")
        client, _, _ = make_client(mock_smtp)

        client.send(sample_message, settings)

        mock_smtp.send_message.assert_called_once()


class TestSMTPClientVerify:
    """Tests for SMTPClient.verify."""

    def test_verify_sends_noop_only(self, settings, mock_smtp):
        client, _, _ = make_client(mock_smtp)

        client.verify(settings)

        mock_smtp.noop.assert_called_once()
        mock_smtp.send_message.assert_not_called()

    def test_verify_timeout(self, settings):
        client = SMTPClient(smtp_factory=Mock(side_effect=socket.timeout("timed out")))

        with pytest.raises(EmailDeliveryError) as exc_info:
            client.verify(settings)

        assert exc_info.value.diagnostic == DeliveryDiagnostic.TIMEOUT


class TestClassifySMTPError:
    """Tests for classify_smtp_error."""

    @pytest.mark.parametrize(
        "exc, expected",
        [
            (smtplib.SMTPAuthenticationError(535, b"no"), DeliveryDiagnostic.AUTH_FAILURE),
            (smtplib.SMTPRecipientsRefused({"x@example.com": (550, b"no")}), DeliveryDiagnostic.ENVELOPE_ERROR),
            (smtplib.SMTPSenderRefused(553, b"no", "desk@example.com"), DeliveryDiagnostic.ENVELOPE_ERROR),
            (smtplib.SMTPDataError(554, b"rejected"), DeliveryDiagnostic.MESSAGE_FORMAT_ERROR),
            (smtplib.SMTPConnectError(421, b"busy"), DeliveryDiagnostic.CONNECTION_REFUSED),
            (ssl.SSLError("handshake"), DeliveryDiagnostic.TLS_ERROR),
            (socket.gaierror("Name or service not known"), DeliveryDiagnostic.DNS_FAILURE),
            (socket.timeout("timed out"), DeliveryDiagnostic.TIMEOUT),
            (ConnectionRefusedError("refused"), DeliveryDiagnostic.CONNECTION_REFUSED),
            (smtplib.SMTPServerDisconnected("closed"), DeliveryDiagnostic.UNKNOWN),
        ],
    )
    def test_classification(self, exc, expected):
        assert classify_smtp_error(exc) == expected


class TestMessageHelpers:
    """Tests for recipient validation, sender and message building."""

    def test_validate_recipient_strips(self):
        assert validate_recipient("  client@example.com ") == "client@example.com"

    @pytest.mark.parametrize("address", [None, "", "   ", "not-an-address", "two@@example.com"])
    def test_validate_recipient_rejects(self, address):
        with pytest.raises(EmailDeliveryError) as exc_info:
            validate_recipient(address)

        assert exc_info.value.diagnostic == DeliveryDiagnostic.ENVELOPE_ERROR

    def test_build_sender_address(self):
        assert build_sender_address(make_env_config()) == "Service Desk <desk@example.com>"

    def test_build_message(self):
        message = build_message("Service Desk <desk@example.com>", "client@example.com", "Job #3", "Body text")

        assert message["To"] == "client@example.com"
        assert message["Subject"] == "Job #3"
        assert message.get_content().strip() == "Body text"

    def test_build_message_rejects_header_injection(self):
        with pytest.raises(EmailDeliveryError) as exc_info:
            build_message("desk@example.com", "client@example.com", "Job #3\nBcc: x@example.com", "Body")

        assert exc_info.value.diagnostic == DeliveryDiagnostic.MESSAGE_FORMAT_ERROR


class TestSMTPSettings:
    """Tests for SMTPSettings."""

    def test_from_environment(self):
        settings = SMTPSettings.from_environment(make_env_config(smtp_secure=True, smtp_port=465), timeout=7.5)

        assert settings.host == "smtp.example.com"
        assert settings.port == 465
        assert settings.secure is True
        assert settings.timeout == 7.5
        assert settings.label == "configured"

    def test_describe(self):
        settings = SMTPSettings(host="smtp.example.com", port=587, verify_certificates=False, label="relaxed_tls")

        assert settings.describe() == "relaxed_tls (smtp.example.com:587 starttls, relaxed-certs)"
