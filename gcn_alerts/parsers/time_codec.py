"""
Truncated Julian Date conversion.

GCN burst times are sent as a TJD word and a centiseconds-of-day word.
TJD 12640 is 2003-01-01T00:00:00 UTC; all dates here are timezone aware UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Tuple

TJD_ANCHOR = 12640
TJD_ANCHOR_DATE = datetime(2003, 1, 1, tzinfo=timezone.utc)

# Date format of the -grb_date / -notice_date script and control arguments
ALERT_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def tjd_to_datetime(tjd: int, centiseconds: int) -> datetime:
    """Convert TJD + centiseconds of day to a UTC datetime"""
    return TJD_ANCHOR_DATE + timedelta(days=tjd - TJD_ANCHOR, milliseconds=centiseconds * 10)


def datetime_to_tjd(when: datetime) -> Tuple[int, int]:
    """Convert a datetime to (TJD, centiseconds of day)"""
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    delta = when.astimezone(timezone.utc) - TJD_ANCHOR_DATE
    centiseconds = (delta.seconds * 100) + (delta.microseconds // 10000)
    return TJD_ANCHOR + delta.days, centiseconds


def decimal_year(when: datetime) -> float:
    """
    Decimal year of a date, used as the epoch of apparent coordinates.

    Fraction is milliseconds since the start of the year over milliseconds
    in that year, so leap years are handled.
    """
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    when = when.astimezone(timezone.utc)
    start = datetime(when.year, 1, 1, tzinfo=timezone.utc)
    end = datetime(when.year + 1, 1, 1, tzinfo=timezone.utc)
    elapsed_ms = (when - start) / timedelta(milliseconds=1)
    year_ms = (end - start) / timedelta(milliseconds=1)
    return when.year + (elapsed_ms / year_ms)


def format_alert_date(when: datetime) -> str:
    """Format a date as yyyy-MM-ddTHH:mm:ss in UTC"""
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc).strftime(ALERT_DATE_FORMAT)


def parse_alert_date(text: str) -> datetime:
    """
    Parse a yyyy-MM-ddTHH:mm:ss date, taken as UTC.

    Raises:
        ValueError: text does not match the format
    """
    return datetime.strptime(text, ALERT_DATE_FORMAT).replace(tzinfo=timezone.utc)
