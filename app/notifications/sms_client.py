"""SMS provider clients.

A provider delivers one already-segmented text to one canonical (E.164)
number and reports the outcome as a ProviderResponse. Providers do not retry;
the SMS delivery engine owns the retry policy.
"""

import itertools
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import requests

from .models import DeliveryDiagnostic, SMSDeliveryError

logger = logging.getLogger(__name__)

USER_AGENT = "field-service-coordinator/1.0"


@dataclass
class ProviderResponse:
    """Result of a single provider call."""

    ok: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None
    diagnostic: Optional[DeliveryDiagnostic] = None


class SMSProvider(Protocol):
    """Protocol describing an SMS gateway."""

    def send(self, phone: str, text: str) -> ProviderResponse:  # pragma: no cover - protocol
        """Deliver ``text`` to ``phone`` (E.164, with leading ``+``)."""


class ConsoleSMSProvider:
    """Provider that only logs the payload; used when no gateway is configured."""

    def __init__(self):
        self._ids = itertools.count(1)

    def send(self, phone: str, text: str) -> ProviderResponse:
        message_id = f"console-{next(self._ids)}"
        logger.info(f"SMS to {phone} [{message_id}]: {text}")
        return ProviderResponse(ok=True, provider_message_id=message_id)


class HTTPSMSProvider:
    """JSON-over-HTTP gateway client.

    Posts ``{"api_key", "to", "text", "gateway"}`` to ``<api_url>/send`` and
    expects ``{"success": true, "message_id": ...}`` back.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        sender_id: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the provider.

        Args:
            api_url: Gateway base URL; ``/send`` is appended
            api_key: Gateway API key
            sender_id: Gateway/sender name shown to recipients
            timeout: Per-request timeout in seconds
            session: requests.Session to use (creates one if None)
        """
        self.send_url = api_url.rstrip("/") + "/send"
        self.api_key = api_key
        self.sender_id = sender_id
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})

    def send(self, phone: str, text: str) -> ProviderResponse:
        payload = {
            "api_key": self.api_key,
            "to": phone,
            "text": text,
            "gateway": self.sender_id,
        }

        try:
            response = self.session.post(self.send_url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            return self._failure(f"SMS gateway timed out after {self.timeout}s: {e}", DeliveryDiagnostic.TIMEOUT)
        except requests.exceptions.SSLError as e:
            return self._failure(f"TLS error talking to SMS gateway: {e}", DeliveryDiagnostic.TLS_ERROR)
        except requests.exceptions.ConnectionError as e:
            return self._failure(f"Could not reach SMS gateway: {e}", _classify_connection_error(e))
        except requests.exceptions.RequestException as e:
            return self._failure(f"SMS gateway request failed: {e}", DeliveryDiagnostic.UNKNOWN)

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.ok and data.get("success"):
            message_id = data.get("message_id")
            return ProviderResponse(ok=True, provider_message_id=str(message_id) if message_id else None)

        error = data.get("error") or data.get("message") or f"HTTP {response.status_code}: {response.reason}"
        return self._failure(f"SMS gateway rejected message: {error}", _classify_status(response.status_code))

    def _failure(self, message: str, diagnostic: DeliveryDiagnostic) -> ProviderResponse:
        logger.warning(message)
        return ProviderResponse(ok=False, error=message, diagnostic=diagnostic)


class FailoverSMSProvider:
    """Sends through ``primary`` and hands failures to ``fallback`` after a pause.

    A failed primary call (an error response or SMSDeliveryError) waits
    ``delay_seconds`` and then tries the fallback once. The fallback's
    response is returned as is; if both fail the error names both gateways.
    """

    def __init__(
        self,
        primary: SMSProvider,
        fallback: SMSProvider,
        delay_seconds: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.primary = primary
        self.fallback = fallback
        self.delay_seconds = delay_seconds
        self.sleep = sleep

    def send(self, phone: str, text: str) -> ProviderResponse:
        first = _call(self.primary, phone, text)
        if first.ok:
            return first

        logger.warning(
            f"Primary SMS gateway failed for {phone} ({first.error}); "
            f"trying fallback in {self.delay_seconds}s"
        )
        self.sleep(self.delay_seconds)

        second = _call(self.fallback, phone, text)
        if second.ok:
            logger.info(f"SMS to {phone} delivered through fallback gateway")
            return second

        return ProviderResponse(
            ok=False,
            error=f"primary: {first.error}; fallback: {second.error}",
            diagnostic=second.diagnostic or first.diagnostic,
        )


def _call(provider: SMSProvider, phone: str, text: str) -> ProviderResponse:
    try:
        return provider.send(phone, text)
    except SMSDeliveryError as e:
        return ProviderResponse(ok=False, error=str(e), diagnostic=e.diagnostic)


def _classify_connection_error(exc: requests.exceptions.ConnectionError) -> DeliveryDiagnostic:
    text = str(exc).lower()
    if "name or service not known" in text or "nodename nor servname" in text or "name resolution" in text:
        return DeliveryDiagnostic.DNS_FAILURE
    if "refused" in text:
        return DeliveryDiagnostic.CONNECTION_REFUSED
    return DeliveryDiagnostic.UNKNOWN


def _classify_status(status_code: int) -> DeliveryDiagnostic:
    if status_code in (401, 403):
        return DeliveryDiagnostic.AUTH_FAILURE
    if status_code in (400, 422):
        return DeliveryDiagnostic.MESSAGE_FORMAT_ERROR
    if status_code in (408, 504):
        return DeliveryDiagnostic.TIMEOUT
    return DeliveryDiagnostic.UNKNOWN
