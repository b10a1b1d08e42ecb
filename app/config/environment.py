"""Environment variable loading and validation.

Secrets and endpoints (SMTP credentials, SMS API key, database URL) are read
from the process environment; ``app.main`` loads a ``.env`` file first via
python-dotenv.
"""

import os
from typing import List, Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
TRUTHY = ("1", "true", "yes", "on")


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_secure: bool = False,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        smtp_from: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
        sms_api_url: Optional[str] = None,
        sms_api_key: Optional[str] = None,
        sms_sender_id: Optional[str] = None,
        sms_fallback_api_url: Optional[str] = None,
        sms_fallback_api_key: Optional[str] = None,
        log_level: Optional[str] = None,
        database_url: Optional[str] = None,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_secure = smtp_secure
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_from = smtp_from or smtp_user or f"noreply@{smtp_host}"
        self.smtp_sender_name = smtp_sender_name or "Service Desk"
        self.sms_api_url = sms_api_url
        self.sms_api_key = sms_api_key
        self.sms_sender_id = sms_sender_id or "SERVIS"
        self.sms_fallback_api_url = sms_fallback_api_url
        self.sms_fallback_api_key = sms_fallback_api_key
        self.log_level = log_level
        self.database_url = database_url or "sqlite:///./data/field_service.db"

    @property
    def sms_configured(self) -> bool:
        return bool(self.sms_api_url and self.sms_api_key)

    @property
    def sms_fallback_configured(self) -> bool:
        return bool(self.sms_fallback_api_url and self.sms_fallback_api_key)


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Required environment variables:
    - SMTP_HOST: SMTP server hostname
    - SMTP_PORT: SMTP server port (1-65535)

    Optional environment variables:
    - SMTP_SECURE: "true" for implicit TLS (port 465 style)
    - SMTP_USER / SMTP_PASS: SMTP credentials (both or neither)
    - SMTP_FROM: envelope sender address (defaults to SMTP_USER)
    - SMTP_SENDER_NAME: display name for outgoing mail
    - SMS_API_URL / SMS_API_KEY / SMS_SENDER_ID: HTTP SMS gateway settings
    - SMS_FALLBACK_API_URL / SMS_FALLBACK_API_KEY: second gateway tried when the first fails
    - LOG_LEVEL: override log level
    - DATABASE_URL: SQLAlchemy URL (default: sqlite:///./data/field_service.db)

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors: List[str] = []

    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_secure = (os.getenv("SMTP_SECURE") or "").strip().lower() in TRUTHY
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    smtp_from = os.getenv("SMTP_FROM")
    log_level = os.getenv("LOG_LEVEL")
    sms_fallback_api_url = os.getenv("SMS_FALLBACK_API_URL")
    sms_fallback_api_key = os.getenv("SMS_FALLBACK_API_KEY")

    if not smtp_host:
        errors.append("Missing required environment variable: SMTP_HOST")

    smtp_port = None
    if not smtp_port_str:
        errors.append("Missing required environment variable: SMTP_PORT")
    else:
        try:
            smtp_port = int(smtp_port_str)
            if not 1 <= smtp_port <= 65535:
                errors.append(f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535.")
        except ValueError:
            errors.append(f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer.")

    if smtp_user and not smtp_pass:
        errors.append("SMTP_USER is set but SMTP_PASS is not. Both must be set for authentication.")
    elif smtp_pass and not smtp_user:
        errors.append("SMTP_PASS is set but SMTP_USER is not. Both must be set for authentication.")

    if bool(sms_fallback_api_url) != bool(sms_fallback_api_key):
        errors.append("SMS_FALLBACK_API_URL and SMS_FALLBACK_API_KEY must be set together")

    if smtp_from:
        try:
            smtp_from = validate_email(smtp_from, check_deliverability=False).normalized
        except EmailNotValidError as e:
            errors.append(f"Invalid SMTP_FROM address '{smtp_from}': {e}")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Ensure SMTP_HOST and SMTP_PORT are set",
                "Set SMTP_USER and SMTP_PASS together or not at all",
            ],
        )

    return EnvironmentConfig(
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_secure=smtp_secure,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_from=smtp_from,
        smtp_sender_name=os.getenv("SMTP_SENDER_NAME"),
        sms_api_url=os.getenv("SMS_API_URL"),
        sms_api_key=os.getenv("SMS_API_KEY"),
        sms_sender_id=os.getenv("SMS_SENDER_ID"),
        sms_fallback_api_url=sms_fallback_api_url,
        sms_fallback_api_key=sms_fallback_api_key,
        log_level=log_level.upper() if log_level else None,
        database_url=os.getenv("DATABASE_URL"),
    )
