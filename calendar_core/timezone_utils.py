"""
Timezone utilities for the calendar core.

Appointments are laid out in local wall-clock time. Aware datetimes coming
from a data source are converted to the zone of the calendar instance and
made naive, so that all arithmetic downstream works on one clock.

Every function takes the zone explicitly; None means UTC.
"""

from datetime import date, datetime, tzinfo
from typing import Optional
import pytz


def get_timezone(timezone_name: Optional[str]) -> tzinfo:
    """
    Get a pytz timezone object by name.

    Unknown zone names fall back to UTC.
    """
    if not timezone_name:
        return pytz.UTC
    try:
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def now_local(tz: Optional[tzinfo] = None) -> datetime:
    """Current wall-clock time in tz as a naive datetime."""
    return datetime.now(tz or pytz.UTC).replace(tzinfo=None)


def today_local(tz: Optional[tzinfo] = None) -> date:
    return now_local(tz).date()


def to_local_naive(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """
    Convert an aware datetime to a naive datetime in tz.

    Naive inputs are taken to already be local and returned unchanged.
    """
    if dt.tzinfo is not None:
        return dt.astimezone(tz or pytz.UTC).replace(tzinfo=None)
    return dt


def parse_datetime(value, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """
    Parse a timestamp as supplied by a data source.

    Accepts datetime and date objects and ISO-8601 strings, with either a
    'T' or a space between date and time and an optional trailing 'Z'.

    Returns:
        A naive datetime in tz, or None if the value cannot be interpreted.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_local_naive(value, tz)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    text = text.replace(" ", "T", 1)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return to_local_naive(datetime.fromisoformat(text), tz)
    except ValueError:
        return None


def parse_date(value, tz: Optional[tzinfo] = None) -> Optional[date]:
    """Parse a calendar date, tolerating a trailing time part."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_datetime(value, tz)
    return parsed.date() if parsed else None
