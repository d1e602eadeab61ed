"""Date formatting utilities for booking messages."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from dateutil.parser import isoparse


def to_local(value: datetime | str, tz_name: str) -> datetime:
    """Convert an aware datetime or ISO string to the practitioner's zone."""
    parsed = value if isinstance(value, datetime) else isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(ZoneInfo(tz_name))


def format_slot(start: datetime | str, tz_name: str) -> str:
    """Format a slot start for display, e.g. 'Wednesday, May 14 at 2:00 PM'."""
    local = to_local(start, tz_name)
    hour = local.strftime("%I").lstrip("0")
    return f"{local.strftime('%A, %B')} {local.day} at {hour}:{local.strftime('%M %p')}"


def format_session_dates(dates: list[datetime], tz_name: str) -> str:
    """Comma-separated session dates, or 'none' when there are none."""
    if not dates:
        return "none"
    return ", ".join(to_local(d, tz_name).strftime("%Y-%m-%d") for d in dates)
