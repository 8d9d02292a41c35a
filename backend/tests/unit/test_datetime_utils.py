"""
Unit tests for datetime utilities.

Tests UTC normalization and the timestamp formats used in notifications.
"""

from datetime import datetime, timezone, timedelta

from utils.datetime_utils import utc_now, ensure_utc, to_epoch_ms, to_iso_string


class TestUtcHelpers:
    """Test UTC datetime helpers."""

    def test_utc_now_is_timezone_aware(self):
        """Test that utc_now returns an aware UTC datetime."""
        now = utc_now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)

    def test_ensure_utc_treats_naive_as_utc(self):
        """Naive values (as returned by SQLite) are interpreted as UTC."""
        naive = datetime(2025, 1, 28, 10, 0, 0)
        result = ensure_utc(naive)
        assert result == datetime(2025, 1, 28, 10, 0, 0, tzinfo=timezone.utc)

    def test_ensure_utc_converts_other_zones(self):
        """Aware values in other zones are converted to UTC."""
        plus_eight = timezone(timedelta(hours=8))
        result = ensure_utc(datetime(2025, 1, 28, 18, 0, 0, tzinfo=plus_eight))
        assert result == datetime(2025, 1, 28, 10, 0, 0, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc

    def test_ensure_utc_none(self):
        """None passes through."""
        assert ensure_utc(None) is None


class TestTimestampFormats:
    """Test epoch and ISO formatting."""

    def test_to_epoch_ms(self):
        """Epoch milliseconds of a known instant."""
        dt = datetime(2024, 1, 1, 0, 0, 0, 500000, tzinfo=timezone.utc)
        assert to_epoch_ms(dt) == 1704067200500

    def test_to_epoch_ms_naive_is_utc(self):
        """Naive datetimes are treated as UTC."""
        assert to_epoch_ms(datetime(1970, 1, 1, 0, 0, 1)) == 1000

    def test_to_iso_string(self):
        """ISO 8601 with an explicit UTC offset."""
        dt = datetime(2025, 1, 28, 10, 0, 0)
        assert to_iso_string(dt) == "2025-01-28T10:00:00+00:00"
        assert to_iso_string(None) is None
