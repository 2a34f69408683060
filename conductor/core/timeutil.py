"""Date and time helpers.

All timestamps in Conductor are naive local wall-clock datetimes. Input that
carries a UTC offset is converted to local time and the offset dropped.
"""

import math
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional

Clock = Callable[[], datetime]


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 datetime, a bare date, or ``YYYY-MM-DD HH:MM``.

    Returns None for empty or unparseable input.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` (or the date part of a datetime string)."""
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = start_of_day(day)
    return start, start + timedelta(days=1)


def rounded_minimum_start(now: datetime, buffer_minutes: int = 15, rounding_minutes: int = 5) -> datetime:
    """Earliest acceptable block start: now + buffer, rounded up to the next boundary."""
    candidate = (now + timedelta(minutes=buffer_minutes)).replace(second=0, microsecond=0)
    if now.second or now.microsecond:
        candidate += timedelta(minutes=1)
    total = candidate.hour * 60 + candidate.minute
    rounded = math.ceil(total / rounding_minutes) * rounding_minutes
    return datetime.combine(candidate.date(), time.min) + timedelta(minutes=rounded)


def format_time(value: datetime) -> str:
    """Short clock label, e.g. ``9:05 AM``."""
    return value.strftime("%I:%M %p").lstrip("0")


def format_short_date(value: date) -> str:
    """Month/day label, e.g. ``Mar 4``."""
    return f"{value.strftime('%b')} {value.day}"


def format_duration(delta: timedelta) -> str:
    minutes = int(delta.total_seconds() // 60)
    hours, minutes = divmod(minutes, 60)
    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"
