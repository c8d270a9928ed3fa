"""
Tests for datetime utilities module.
"""
from datetime import datetime, timedelta, timezone

from assessment.core.datetime_utils import elapsed_ms, ensure_timezone_aware, utc_now


class TestUtcNow:
    def test_is_timezone_aware_utc(self):
        assert utc_now().tzinfo == timezone.utc


class TestEnsureTimezoneAware:
    """Tests for ensure_timezone_aware function."""

    def test_naive_datetime_becomes_utc(self):
        """Test that a naive datetime is interpreted as UTC."""
        naive_dt = datetime(2024, 1, 15, 12, 30, 45)

        result = ensure_timezone_aware(naive_dt)

        assert result.tzinfo == timezone.utc
        assert result.replace(tzinfo=None) == naive_dt

    def test_utc_datetime_unchanged(self):
        utc_dt = datetime(2024, 1, 15, 12, 30, 45, tzinfo=timezone.utc)
        assert ensure_timezone_aware(utc_dt) is utc_dt

    def test_non_utc_timezone_preserved(self):
        """Test that non-UTC timezone-aware datetimes are preserved."""
        tz_plus_5 = timezone(timedelta(hours=5))
        aware_dt = datetime(2024, 1, 15, 12, 30, 45, tzinfo=tz_plus_5)

        result = ensure_timezone_aware(aware_dt)

        assert result is aware_dt
        assert result.tzinfo == tz_plus_5


class TestElapsedMs:
    """Tests for elapsed_ms function."""

    def test_whole_milliseconds(self):
        start = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
        assert elapsed_ms(start, start + timedelta(seconds=2, microseconds=500_900)) == 2500

    def test_never_negative(self):
        start = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
        assert elapsed_ms(start, start - timedelta(seconds=5)) == 0

    def test_mixed_naive_and_aware(self):
        """Naive values read back from SQLite compare as UTC."""
        start = datetime(2024, 1, 15, 12, 0, 0)
        now = datetime(2024, 1, 15, 12, 0, 1, tzinfo=timezone.utc)
        assert elapsed_ms(start, now) == 1000
