"""
Tests for datetime utilities module.

Tests timezone handling and conversion of ephemeral-store timestamps.
"""
from datetime import datetime, timezone, timedelta

from app.utils.datetime_utils import utc_now, ensure_utc, from_timestamp


class TestUtcNow:
    """Tests for utc_now() function."""

    def test_returns_timezone_aware_datetime(self):
        result = utc_now()
        assert result.tzinfo == timezone.utc

    def test_returns_current_time(self):
        before = datetime.now(timezone.utc)
        result = utc_now()
        after = datetime.now(timezone.utc)

        assert before <= result <= after


class TestEnsureUtc:
    """Tests for ensure_utc() function."""

    def test_naive_datetime_is_assumed_utc(self):
        """SQLite hands back naive values; they are UTC already."""
        result = ensure_utc(datetime(2025, 12, 16, 11, 30))

        assert result == datetime(2025, 12, 16, 11, 30, tzinfo=timezone.utc)

    def test_converts_other_offsets_to_utc(self):
        manila = timezone(timedelta(hours=8))
        result = ensure_utc(datetime(2025, 12, 16, 19, 30, tzinfo=manila))

        assert result.tzinfo == timezone.utc
        assert result.hour == 11

    def test_naive_and_aware_values_compare_after_normalising(self):
        stored = datetime(2025, 12, 16, 11, 30)
        live = datetime(2025, 12, 16, 11, 31, tzinfo=timezone.utc)

        assert ensure_utc(stored) < live

    def test_handles_none_input(self):
        assert ensure_utc(None) is None


class TestFromTimestamp:
    """Tests for from_timestamp() function."""

    def test_converts_unix_seconds(self):
        result = from_timestamp(1_700_000_000.5)

        assert result == datetime(2023, 11, 14, 22, 13, 20, 500000, tzinfo=timezone.utc)

    def test_handles_none_input(self):
        assert from_timestamp(None) is None
