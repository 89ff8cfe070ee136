"""Date and time helpers shared by the services."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from ..config import LOCAL_TIMEZONE


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as stored by MongoDB) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_day(value: datetime, tz_name: str = LOCAL_TIMEZONE) -> date:
    """Return the calendar day of *value* in the configured local timezone."""
    return ensure_utc(value).astimezone(ZoneInfo(tz_name)).date()


def local_day_bounds(day: date, tz_name: str = LOCAL_TIMEZONE) -> tuple[datetime, datetime]:
    """Return the UTC [start, end) range covering *day* in local time."""
    tz = ZoneInfo(tz_name)
    start = datetime(day.year, day.month, day.day, tzinfo=tz)
    return start.astimezone(timezone.utc), (start + timedelta(days=1)).astimezone(timezone.utc)


def floor_to_minute(value: datetime) -> datetime:
    return ensure_utc(value).replace(second=0, microsecond=0)


def format_duration(seconds: float) -> str:
    """Human readable duration, e.g. ``"2m 5s"``."""
    if seconds < 1:
        return f"{int(seconds * 1000)}ms"
    whole = int(seconds)
    if whole < 60:
        return f"{whole}s"
    return f"{whole // 60}m {whole % 60}s"


__all__ = [
    "utcnow",
    "ensure_utc",
    "local_day",
    "local_day_bounds",
    "floor_to_minute",
    "format_duration",
]
