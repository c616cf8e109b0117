"""Clock and timezone helpers for icsnotes."""

from __future__ import annotations

import datetime
import logging
import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"

# Environment override used by tests to freeze "now"
TEST_TIME_ENV = "ICSNOTES_TEST_TIME"


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the ICSNOTES_TEST_TIME environment variable.
    Format: ISO 8601 datetime string (e.g., "2024-01-08T09:00:00-05:00"). Naive
    values are taken as UTC.

    Returns:
        Current time in UTC with timezone info
    """
    test_time = os.environ.get(TEST_TIME_ENV)
    if test_time:
        try:
            dt = date_parser.isoparse(test_time)
        except ValueError:
            logger.warning("Invalid %s=%r; using the real clock", TEST_TIME_ENV, test_time)
        else:
            if dt.tzinfo is None:
                return dt.replace(tzinfo=datetime.timezone.utc)
            return dt.astimezone(datetime.timezone.utc)

    return datetime.datetime.now(datetime.timezone.utc)


def resolve_timezone(name: str | None) -> datetime.tzinfo:
    """Resolve an IANA timezone name, falling back to UTC.

    Args:
        name: IANA identifier such as "Europe/Berlin" (None or empty means UTC)

    Returns:
        A ZoneInfo instance
    """
    if not name:
        return ZoneInfo(DEFAULT_TIMEZONE)
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; falling back to %s", name, DEFAULT_TIMEZONE)
        return ZoneInfo(DEFAULT_TIMEZONE)
