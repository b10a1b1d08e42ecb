"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class DispatchMode(str, Enum):
    """How lifecycle events are handed to the notification dispatcher."""

    BACKGROUND = "background"
    INLINE = "inline"


class EmailConfig(BaseModel):
    """Email delivery engine settings."""

    enabled: bool = Field(True, description="Send e-mail notifications")
    max_attempts: int = Field(3, ge=1, le=10, description="Attempts per logical send")
    base_delay_ms: int = Field(1000, ge=0, le=60000, description="Backoff delay after the first failure")
    max_delay_ms: int = Field(30000, ge=0, le=300000, description="Upper bound on any backoff delay")
    probe_timeout_seconds: float = Field(20.0, gt=0, le=120, description="Timeout per connection attempt")
    reverify_on_failure: bool = Field(
        True, description="Re-run the connectivity fallback ladder after a send exhausts its retries"
    )
    verify_interval_minutes: int = Field(
        0, ge=0, le=1440, description="Periodic connectivity probe interval (0 disables)"
    )

    @model_validator(mode="after")
    def check_delays(self):
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be greater than or equal to base_delay_ms")
        return self


class SMSConfig(BaseModel):
    """SMS delivery engine settings."""

    enabled: bool = Field(True, description="Send SMS notifications")
    country_code: str = Field("382", description="Default country calling code for local numbers")
    segment_length: int = Field(
        160, ge=20, le=1600, description="GSM-7 characters per provider segment (UCS-2 text is capped at 70)"
    )
    transliterate: bool = Field(
        False, description="Replace č, ć, š, đ, ž and typographic punctuation so messages stay GSM-7"
    )
    max_attempts: int = Field(2, ge=1, le=5, description="Attempts per segment")
    retry_delay_seconds: float = Field(1.0, ge=0, le=60)
    request_timeout_seconds: float = Field(10.0, gt=0, le=120)
    enable_fallback: bool = Field(True, description="Use the fallback gateway when one is configured")
    fallback_delay_seconds: float = Field(
        5.0, ge=0, le=60, description="Wait before handing a failed message to the fallback gateway"
    )

    @field_validator("country_code")
    @classmethod
    def digits_only(cls, v: str) -> str:
        stripped = v.strip().lstrip("+")
        if not stripped.isdigit() or not 1 <= len(stripped) <= 3:
            raise ValueError("country_code must be 1-3 digits, e.g. '382'")
        return stripped


class SupplierEntry(BaseModel):
    """One external supplier reachable for part orders."""

    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Supplier name cannot be empty or whitespace-only")
        return stripped


class BrandGroupConfig(BaseModel):
    """Manufacturers that always route to one dedicated supplier."""

    name: str = "Com Plus"
    brands: List[str] = Field(
        default_factory=lambda: ["Electrolux", "Elica", "Candy", "Hoover", "Turbo Air"]
    )
    supplier: Optional[SupplierEntry] = None

    @field_validator("brands")
    @classmethod
    def strip_brands(cls, v: List[str]) -> List[str]:
        return [brand.strip() for brand in v if brand and brand.strip()]


class SuppliersConfig(BaseModel):
    """Supplier routing table."""

    brand_group: BrandGroupConfig = Field(default_factory=BrandGroupConfig)
    suppliers: List[SupplierEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_duplicates(self):
        seen = set()
        for supplier in self.suppliers:
            key = supplier.name.lower()
            if key in seen:
                raise ValueError(f"Duplicate supplier: {supplier.name} appears multiple times")
            seen.add(key)
        return self


class DispatchConfig(BaseModel):
    """Notification dispatch settings."""

    mode: DispatchMode = Field(DispatchMode.BACKGROUND, description="background or inline")
    workers: int = Field(4, ge=1, le=64, description="Background dispatch worker threads")

    model_config = {"use_enum_values": True}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(LogFormat.KEY_VALUE, description="Log output format (json or key-value)")

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the field service coordinator."""

    email: EmailConfig = Field(default_factory=EmailConfig)
    sms: SMSConfig = Field(default_factory=SMSConfig)
    suppliers: SuppliersConfig = Field(default_factory=SuppliersConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
