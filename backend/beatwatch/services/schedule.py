"""
Duty window helpers.

Duty times are daily times-of-day ("HH:MM") interpreted in DUTY_TIMEZONE.
An end at or before the start wraps to the next day; start == end is a
full 24-hour window.
"""

from datetime import datetime, time, timedelta
from typing import Optional

import pytz

from beatwatch.config import config
from beatwatch.errors import ValidationError

FULL_DAY_START = time(0, 0)
FULL_DAY_END = time(23, 59)


def parse_time_of_day(value, field: str = "time") -> time:
    """Parse "HH:MM" (or a datetime.time) into a time. Raises ValidationError."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string in HH:MM format")
    try:
        parsed = datetime.strptime(value.strip(), "%H:%M")
    except ValueError:
        raise ValidationError(f"{field} must be in HH:MM format, got {value!r}")
    return parsed.time()


def duty_duration(start: time, end: time) -> timedelta:
    """Length of the daily window, wrapping overnight shifts."""
    if (start, end) == (FULL_DAY_START, FULL_DAY_END):
        return timedelta(hours=24)
    start_minutes = start.hour * 60 + start.minute
    end_minutes = end.hour * 60 + end.minute
    if end_minutes <= start_minutes:
        end_minutes += 24 * 60
    return timedelta(minutes=end_minutes - start_minutes)


def format_duty_window(start: Optional[time], end: Optional[time]) -> str:
    """Human label such as "6:00 AM - 6:00 PM" or "24-Hour Duty"."""
    if start is None:
        return "Not scheduled"
    if (start, end) == (FULL_DAY_START, FULL_DAY_END):
        return "24-Hour Duty"

    def _fmt(t: time) -> str:
        hour = t.hour % 12 or 12
        return f"{hour}:{t.minute:02d} {'PM' if t.hour >= 12 else 'AM'}"

    if end is None:
        return f"{_fmt(start)} - Ongoing"
    return f"{_fmt(start)} - {_fmt(end)}"


def format_duration(delta: timedelta) -> str:
    minutes = int(delta.total_seconds() // 60)
    return f"{minutes // 60}h {minutes % 60}m"


def next_end_after(end: time, after: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    First occurrence of the end time-of-day strictly after `after`.

    `after` and the result are naive UTC, matching the rest of the schema.
    """
    tz = pytz.timezone(tz_name or config.DUTY_TIMEZONE)
    local_after = pytz.utc.localize(after).astimezone(tz)

    candidate = tz.localize(datetime.combine(local_after.date(), end))
    if candidate <= local_after:
        candidate = tz.localize(datetime.combine(local_after.date() + timedelta(days=1), end))

    return candidate.astimezone(pytz.utc).replace(tzinfo=None)
