"""E-mail delivery engine: retry with capped exponential backoff and a
connectivity fallback ladder.

The active SMTP route is an immutable SMTPSettings instance swapped under a
lock. A send takes a snapshot of the route when it starts and keeps it for
every retry, so a concurrent swap never changes an in-flight send.
"""

import threading
import time
from dataclasses import replace
from typing import Callable, List, Optional

from app.config.environment import EnvironmentConfig
from app.config.models import EmailConfig
from app.logging import get_logger

from .models import DeliveryDiagnostic, EmailDeliveryError, EmailDeliveryResult, VerificationResult
from .smtp_client import (
    SMTPClient,
    SMTPSettings,
    build_message,
    build_sender_address,
    validate_recipient,
)

logger = get_logger(__name__, component="email")


def fallback_ladder(configured: SMTPSettings) -> List[SMTPSettings]:
    """Routes to probe, in order, when the configured route is unusable."""
    return [
        configured,
        replace(configured, verify_certificates=False, label="relaxed_tls"),
        replace(configured, port=587, secure=False, label="starttls_587"),
        replace(configured, port=465, secure=True, label="implicit_tls_465"),
    ]


class EmailDeliveryEngine:
    """Sends plain-text e-mail with a per-send retry budget.

    Example:
        >>> engine = EmailDeliveryEngine(env_config, app_config.email)
        >>> result = engine.send("client@example.com", "Job #12 completed", body)
        >>> result.succeeded, result.attempts
        (True, 1)
    """

    def __init__(
        self,
        env_config: EnvironmentConfig,
        email_config: Optional[EmailConfig] = None,
        smtp_client: Optional[SMTPClient] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the engine.

        Args:
            env_config: Environment configuration with SMTP settings
            email_config: Retry and probe settings (defaults if None)
            smtp_client: SMTP client instance (creates default if None)
            sleep: Function used to wait between attempts (injectable for tests)
        """
        self.env_config = env_config
        self.email_config = email_config or EmailConfig()
        self.smtp_client = smtp_client or SMTPClient()
        self.sleep = sleep
        self.sender = build_sender_address(env_config)
        self._lock = threading.Lock()
        self._configured = SMTPSettings.from_environment(
            env_config, timeout=self.email_config.probe_timeout_seconds
        )
        self._active = self._configured

    @property
    def active_settings(self) -> SMTPSettings:
        with self._lock:
            return self._active

    def _activate(self, settings: SMTPSettings) -> None:
        with self._lock:
            previous = self._active
            self._active = settings
        if previous != settings:
            logger.info(
                f"Active SMTP route changed to {settings.describe()}",
                extra={"event": "email.route.changed", "route": settings.label},
            )

    def reconfigure(self, env_config: Optional[EnvironmentConfig] = None) -> None:
        """Drop any fallback route and return to the configured settings."""
        if env_config is not None:
            self.env_config = env_config
            self.sender = build_sender_address(env_config)
            self._configured = SMTPSettings.from_environment(
                env_config, timeout=self.email_config.probe_timeout_seconds
            )
        self._activate(self._configured)

    def compute_delay_ms(self, attempt: int) -> int:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        delay = self.email_config.base_delay_ms * (2 ** (attempt - 1))
        return min(delay, self.email_config.max_delay_ms)

    def send(self, recipient: str, subject: str, body: str) -> EmailDeliveryResult:
        """Deliver one message, retrying up to ``max_attempts`` times.

        Never raises for delivery problems; the outcome is in the result.
        """
        try:
            address = validate_recipient(recipient)
            message = build_message(self.sender, address, subject, body)
        except EmailDeliveryError as e:
            logger.warning(
                f"Rejected e-mail to {recipient!r} before sending: {e}",
                extra={"event": "email.send.rejected", "diagnostic": e.diagnostic.value},
            )
            return EmailDeliveryResult(
                recipient=recipient or "",
                succeeded=False,
                attempts=0,
                error=str(e),
                diagnostic=e.diagnostic,
            )

        settings = self.active_settings
        max_attempts = self.email_config.max_attempts
        last_error: Optional[EmailDeliveryError] = None

        for attempt in range(1, max_attempts + 1):
            try:
                self.smtp_client.send(message, settings)
                logger.info(
                    f"E-mail sent to {address} (attempts: {attempt})",
                    extra={"event": "email.send.success", "attempt": attempt, "route": settings.label},
                )
                return EmailDeliveryResult(
                    recipient=address, succeeded=True, attempts=attempt, route=settings.label
                )
            except EmailDeliveryError as e:
                last_error = e
                if attempt < max_attempts:
                    delay_ms = self.compute_delay_ms(attempt)
                    logger.warning(
                        f"E-mail to {address} failed (attempt {attempt}/{max_attempts}), "
                        f"retrying in {delay_ms}ms: {e}",
                        extra={
                            "event": "email.send.failure",
                            "attempt": attempt,
                            "diagnostic": e.diagnostic.value,
                            "retry_remaining": True,
                        },
                    )
                    self.sleep(delay_ms / 1000.0)
                else:
                    logger.error(
                        f"E-mail to {address} failed after {max_attempts} attempts: {e}",
                        extra={
                            "event": "email.send.failure",
                            "attempt": attempt,
                            "diagnostic": e.diagnostic.value,
                            "retry_remaining": False,
                        },
                    )

        if self.email_config.reverify_on_failure:
            self.verify()

        return EmailDeliveryResult(
            recipient=address,
            succeeded=False,
            attempts=max_attempts,
            error=str(last_error) if last_error else None,
            diagnostic=last_error.diagnostic if last_error else DeliveryDiagnostic.UNKNOWN,
            route=settings.label,
        )

    def verify(self) -> VerificationResult:
        """Probe the fallback ladder and activate the first route that works.

        If every route fails, the active route is left unchanged.
        """
        tried: List[str] = []
        last_error: Optional[EmailDeliveryError] = None

        for candidate in fallback_ladder(self._configured):
            tried.append(candidate.label)
            try:
                self.smtp_client.verify(candidate)
            except EmailDeliveryError as e:
                last_error = e
                logger.info(
                    f"SMTP probe failed for {candidate.describe()}: {e}",
                    extra={"event": "email.verify.probe_failed", "route": candidate.label, "diagnostic": e.diagnostic.value},
                )
                continue

            self._activate(candidate)
            logger.info(
                f"SMTP connectivity verified via {candidate.describe()}",
                extra={"event": "email.verify.success", "route": candidate.label},
            )
            return VerificationResult(succeeded=True, route=candidate.label, tried=tried)

        logger.error(
            f"SMTP connectivity verification failed for all {len(tried)} routes",
            extra={"event": "email.verify.failure", "tried": tried},
        )
        return VerificationResult(
            succeeded=False,
            tried=tried,
            error=str(last_error) if last_error else None,
            diagnostic=last_error.diagnostic if last_error else DeliveryDiagnostic.UNKNOWN,
        )
