"""Tests for formatting utilities."""

from datetime import datetime, timedelta, timezone

from fork_and_spoon.utils.formatters import (
    format_meal_slot,
    format_queue_length,
    format_time_ago,
)

NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


def _ago(**kwargs) -> str:
    return (NOW - timedelta(**kwargs)).isoformat()


class TestFormatTimeAgo:
    def test_never(self):
        assert format_time_ago(None, NOW) == "Never"
        assert format_time_ago("", NOW) == "Never"

    def test_unknown(self):
        assert format_time_ago("not a date", NOW) == "Unknown"

    def test_just_now(self):
        assert format_time_ago(_ago(seconds=30), NOW) == "Just now"

    def test_minutes(self):
        assert format_time_ago(_ago(minutes=1), NOW) == "1 minute ago"
        assert format_time_ago(_ago(minutes=5), NOW) == "5 minutes ago"

    def test_hours(self):
        assert format_time_ago(_ago(hours=1), NOW) == "1 hour ago"
        assert format_time_ago(_ago(hours=23), NOW) == "23 hours ago"

    def test_days(self):
        assert format_time_ago(_ago(days=3), NOW) == "3 days ago"

    def test_z_suffix(self):
        assert format_time_ago("2024-03-04T11:00:00Z", NOW) == "1 hour ago"


class TestFormatQueueLength:
    def test_empty(self):
        assert format_queue_length(0) == "All changes synced"

    def test_singular_and_plural(self):
        assert format_queue_length(1) == "1 change pending"
        assert format_queue_length(4) == "4 changes pending"


class TestFormatMealSlot:
    def test_slot(self):
        assert format_meal_slot("2024-03-04", "dinner") == "2024-03-04 (dinner)"
