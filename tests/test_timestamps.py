"""Unit tests for timestamp and money utilities."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.utils.timestamps import (
    ensure_utc,
    format_money,
    format_timestamp,
    parse_money,
    parse_timestamp,
    utc_now,
)


class TestUtcNow:
    """Tests for utc_now function."""

    def test_utc_now_returns_utc_datetime(self):
        """Test that utc_now returns a timezone-aware datetime in UTC."""
        now = utc_now()

        assert now.tzinfo == timezone.utc

    def test_utc_now_is_recent(self):
        before = datetime.now(timezone.utc)
        now = utc_now()
        after = datetime.now(timezone.utc)

        assert before <= now <= after


class TestEnsureUtc:
    """Tests for ensure_utc function."""

    def test_none(self):
        assert ensure_utc(None) is None

    def test_naive_datetime_treated_as_utc(self):
        result = ensure_utc(datetime(2025, 3, 4, 12, 0, 0))

        assert result == datetime(2025, 3, 4, 12, 0, 0, tzinfo=timezone.utc)

    def test_other_timezone_converted(self):
        """Test that a +01:00 timestamp is shifted to UTC."""
        cet = timezone(timedelta(hours=1))

        result = ensure_utc(datetime(2025, 3, 4, 12, 0, 0, tzinfo=cet))

        assert result.tzinfo == timezone.utc
        assert result.hour == 11


class TestStorageFormat:
    """Tests for format_timestamp and parse_timestamp."""

    def test_format_uses_z_suffix(self):
        dt = datetime(2025, 3, 4, 12, 30, 45, 123456, tzinfo=timezone.utc)

        assert format_timestamp(dt) == "2025-03-04T12:30:45.123456Z"

    def test_format_converts_to_utc(self):
        cet = timezone(timedelta(hours=1))

        assert format_timestamp(datetime(2025, 3, 4, 12, 0, tzinfo=cet)) == "2025-03-04T11:00:00.000000Z"

    def test_format_none(self):
        assert format_timestamp(None) is None

    def test_parse_storage_format(self):
        parsed = parse_timestamp("2025-03-04T12:30:45.123456Z")

        assert parsed == datetime(2025, 3, 4, 12, 30, 45, 123456, tzinfo=timezone.utc)

    def test_parse_iso_with_offset(self):
        parsed = parse_timestamp("2025-03-04T12:00:00+02:00")

        assert parsed == datetime(2025, 3, 4, 10, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, ""])
    def test_parse_empty(self, value):
        assert parse_timestamp(value) is None

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            parse_timestamp("not-a-date")

    def test_lexical_order_matches_chronological(self):
        earlier = format_timestamp(datetime(2025, 3, 4, 9, 5, tzinfo=timezone.utc))
        later = format_timestamp(datetime(2025, 3, 4, 10, 0, tzinfo=timezone.utc))

        assert earlier < later


class TestMoney:
    """Tests for money encoding."""

    def test_format_money_plain_decimal(self):
        assert format_money(Decimal("1E+2")) == "100"
        assert format_money(Decimal("12.50")) == "12.50"

    def test_format_money_none(self):
        assert format_money(None) is None

    def test_parse_money(self):
        assert parse_money("45.10") == Decimal("45.10")

    @pytest.mark.parametrize("value", [None, "", "twelve"])
    def test_parse_money_unusable(self, value):
        assert parse_money(value) is None
