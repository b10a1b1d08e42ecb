"""Timestamp utilities for UTC handling and storage encoding.

Timestamps are stored as ISO 8601 strings with an explicit ``Z`` suffix so that
lexical ordering in the database matches chronological ordering.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Example:
        >>> utc_now().tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime for database storage.

    Args:
        dt: Datetime to format (naive values are treated as UTC)

    Returns:
        ISO 8601 string such as ``2025-11-04T10:30:00.000000Z``, or None
    """
    dt = ensure_utc(dt)
    if dt is None:
        return None
    return dt.strftime(STORAGE_FORMAT)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back into an aware UTC datetime.

    Accepts the storage format as well as any string ``datetime.fromisoformat``
    understands, so values written by other tools still load.
    """
    if value is None or value == "":
        return None

    try:
        return datetime.strptime(value, STORAGE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return ensure_utc(parsed)


def format_money(amount: Optional[Decimal]) -> Optional[str]:
    """Encode a money amount as a plain decimal string."""
    if amount is None:
        return None
    return format(Decimal(amount), "f")


def parse_money(value: Optional[str]) -> Optional[Decimal]:
    """Decode a stored money string; unparseable values load as None."""
    if value is None or value == "":
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        return None
