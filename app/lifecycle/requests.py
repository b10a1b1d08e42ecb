"""Request payloads accepted by the lifecycle services.

Payloads arrive as plain mappings (from the CLI or another caller) and are
validated here with pydantic. Shape problems become ValidationError; missing
fields that a particular transition requires are checked later by the
services and become PreconditionError.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from app.domain.exceptions import ValidationError
from app.domain.models import Actor, Role, Urgency, WarrantyStatus
from app.utils.timestamps import ensure_utc

RequestT = TypeVar("RequestT", bound=BaseModel)
EnumT = TypeVar("EnumT", bound=Enum)


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid")

    @field_validator("*", mode="before")
    @classmethod
    def blank_strings_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class JobIntake(_Request):
    """Fields accepted when a job is created."""

    client_ref: str
    appliance_ref: str
    description: Optional[str] = None
    technician_ref: Optional[str] = None
    business_partner_ref: Optional[str] = None
    warranty_status: WarrantyStatus = WarrantyStatus.UNKNOWN


class JobTransitionRequest(_Request):
    """Fields a job transition may carry; which are required depends on the target."""

    technician_ref: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    reason: Optional[str] = None
    technician_notes: Optional[str] = None
    work_performed: Optional[str] = None
    is_completely_fixed: Optional[bool] = None
    cost: Optional[Decimal] = Field(None, ge=0)

    @field_validator("scheduled_at")
    @classmethod
    def utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @field_validator("reason", "technician_notes", "work_performed")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else None


class PartOrderIntake(_Request):
    """Fields accepted when a part order is created."""

    part_name: str
    part_number: Optional[str] = None
    manufacturer: Optional[str] = None
    quantity: int = Field(1, ge=1)
    urgency: Urgency = Urgency.NORMAL
    supplier_name: Optional[str] = None
    expected_delivery: Optional[datetime] = None
    admin_notes: Optional[str] = None
    direct_order: bool = False

    @field_validator("expected_delivery")
    @classmethod
    def utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class PartOrderTransitionRequest(_Request):
    """Fields a part-order transition may carry."""

    supplier_name: Optional[str] = None
    actual_cost: Optional[Decimal] = Field(None, ge=0)
    expected_delivery: Optional[datetime] = None
    consumed_for_service_ref: Optional[int] = None
    admin_notes: Optional[str] = None

    @field_validator("expected_delivery")
    @classmethod
    def utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


def parse_request(model_cls: Type[RequestT], payload: Union[None, Mapping[str, Any], RequestT]) -> RequestT:
    """Validate ``payload`` into ``model_cls``.

    Raises:
        ValidationError: If the payload is not a mapping or fails validation
    """
    if isinstance(payload, model_cls):
        return payload
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValidationError(f"Payload must be a mapping, got {type(payload).__name__}")
    try:
        return model_cls.model_validate(dict(payload))
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'payload'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid payload: {problems}") from e


def coerce_status(enum_cls: Type[EnumT], value: Union[str, EnumT]) -> EnumT:
    """Accept an enum member or its string value."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as e:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Unknown status '{value}'. Must be one of: {allowed}") from e


def require_actor(actor: Any) -> Actor:
    """Reject a missing actor, or a technician/partner actor without an id."""
    if not isinstance(actor, Actor):
        raise ValidationError("An actor is required")
    if actor.role in (Role.TECHNICIAN, Role.BUSINESS_PARTNER) and not actor.id:
        raise ValidationError(f"Actor with role {actor.role.value} must carry an id")
    return actor
