"""
Date and Time utilities

This module handles parsing of the timestamp and date formats used by the
upstream feed. All timestamps are normalized to timezone-aware UTC datetimes.
"""
from datetime import date, datetime, timedelta, timezone
import logging

logger = logging.getLogger(__name__)

UPSTREAM_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
UPSTREAM_DATE_FORMAT = "%Y-%m-%d"


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def parse_upstream_datetime(value: str) -> datetime:
    """
    Parse an upstream timestamp into a UTC datetime

    Args:
        value: Timestamp like '2014-06-28T02:00:00Z'

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the timestamp format is invalid
    """
    try:
        dt = datetime.strptime(value.strip(), UPSTREAM_DATETIME_FORMAT)
    except (ValueError, AttributeError) as e:
        raise DateFormatError(f"Invalid upstream timestamp: '{value}'") from e
    return dt.replace(tzinfo=timezone.utc)


def parse_upstream_date(value: str) -> date | None:
    """
    Parse an upstream calendar date

    Upstream uses zero-filled placeholders (e.g. '0000-00-00') for unknown
    dates; those, and empty strings, are reported as None.

    Raises:
        DateFormatError: If the date format is invalid
    """
    text = value.strip() if isinstance(value, str) else value
    if not text or (isinstance(text, str) and text.startswith("0")):
        return None
    try:
        return datetime.strptime(text, UPSTREAM_DATE_FORMAT).date()
    except (ValueError, TypeError) as e:
        raise DateFormatError(f"Invalid upstream date: '{value}'") from e


def format_upstream_datetime(value: datetime) -> str:
    """Render a datetime in the upstream timestamp format (UTC)"""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(UPSTREAM_DATETIME_FORMAT)


def end_time(start: datetime, duration_seconds: int) -> datetime:
    """Return the end of an interval starting at start and lasting duration_seconds"""
    return start + timedelta(seconds=duration_seconds)
