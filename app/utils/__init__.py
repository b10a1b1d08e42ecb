"""Utility functions for time and money encoding."""

from .timestamps import (
    ensure_utc,
    format_money,
    format_timestamp,
    parse_money,
    parse_timestamp,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "format_timestamp",
    "parse_timestamp",
    "format_money",
    "parse_money",
]
