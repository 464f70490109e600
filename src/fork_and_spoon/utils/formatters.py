"""Formatting utilities for display values."""

from datetime import datetime, timezone
from typing import Optional


def format_time_ago(timestamp: Optional[str],
                    now: Optional[datetime] = None) -> str:
    """Render an ISO timestamp as "Just now", "5 minutes ago", etc."""
    if not timestamp:
        return "Never"
    try:
        last = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except (ValueError, TypeError, AttributeError):
        return "Unknown"
    if last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    minutes = int((now - last).total_seconds() / 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    if minutes < 1440:
        hours = minutes // 60
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = minutes // 1440
    return f"{days} day{'s' if days != 1 else ''} ago"


def format_queue_length(count: int) -> str:
    """Pending-change badge text."""
    if count <= 0:
        return "All changes synced"
    return f"{count} change{'s' if count != 1 else ''} pending"


def format_meal_slot(date: str, meal_type: str) -> str:
    """Format a schedule slot, e.g. "2024-03-04 (dinner)"."""
    return f"{date} ({meal_type})"
