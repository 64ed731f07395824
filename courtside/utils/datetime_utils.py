"""
Datetime utility functions.
Provides timezone-aware helpers shared by the roster and availability services.
"""

import re
from datetime import datetime, date, time
from typing import Union
import pytz

_TIME_OF_DAY_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are assumed to already be UTC; SQLite hands back naive
    datetimes for timezone-aware columns.
    """
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def parse_time_of_day(value: str) -> time:
    """
    Parse an "HH:MM" string into a time.

    Raises:
        ValueError: if the string is not a valid 24-hour HH:MM time
    """
    match = _TIME_OF_DAY_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def parse_date(value: Union[str, date]) -> date:
    """Parse an ISO "YYYY-MM-DD" string (datetimes and dates pass through as dates)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")


def get_timezone(name: str):
    """Look up a pytz timezone, raising ValueError for unknown names."""
    try:
        return pytz.timezone(name or "UTC")
    except pytz.UnknownTimeZoneError:
        raise ValueError(f"Unknown timezone '{name}'")


def sunday_based_weekday(day: date) -> int:
    """Day of week with Sunday=0 ... Saturday=6 (Python's weekday() has Monday=0)."""
    return (day.weekday() + 1) % 7


def localize(tz, day: date, at: time) -> datetime:
    """
    Combine a local calendar day and wall-clock time into an aware datetime in tz.

    Wall-clock times that are ambiguous (clocks falling back) or missing
    (clocks springing forward) resolve to standard time via ``is_dst=False``.
    """
    return tz.localize(datetime.combine(day, at), is_dst=False)
