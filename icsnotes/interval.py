"""Interval arithmetic for calendar entries.

Instants come in three granularities:

- ``date``: an all-day instant
- aware ``datetime``: a fixed point on the timeline
- naive ``datetime``: "floating" wall-clock time

Dates and naive datetimes are placed on the timeline in a local timezone
supplied by the caller. Instants of different granularities never compare
equal, so an all-day EXDATE can't knock out a timed occurrence at midnight.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Union

from dateutil import parser as date_parser

Instant = Union[datetime, date]

UTC = timezone.utc

# Smallest step of the datetime representation
ONE_TICK = timedelta(microseconds=1)

_BASIC_DATE_RE = re.compile(r"^\d{8}$")
_EXTENDED_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def is_date_instant(value: Instant) -> bool:
    """Return True for all-day (date-only) instants."""
    return isinstance(value, date) and not isinstance(value, datetime)


def to_timeline(value: Instant, local_tz: tzinfo = UTC) -> datetime:
    """Convert an instant to an aware datetime for ordering and overlap tests.

    Args:
        value: Date or datetime instant
        local_tz: Timezone used for dates and floating datetimes

    Returns:
        Timezone-aware datetime
    """
    if is_date_instant(value):
        return datetime.combine(value, time.min, tzinfo=local_tz)
    if value.tzinfo is None:
        return value.replace(tzinfo=local_tz)
    return value


def instant_key(value: Instant) -> tuple[str, str]:
    """Return a calendar-aware equality key for an instant.

    Aware datetimes compare by their UTC value, so the same moment expressed in
    two zones matches. The granularity tag keeps dates, aware and floating
    datetimes apart.
    """
    if is_date_instant(value):
        return ("date", value.isoformat())
    if value.tzinfo is None:
        return ("floating", value.isoformat(timespec="microseconds"))
    return ("utc", value.astimezone(UTC).isoformat(timespec="microseconds"))


def canonical_instance_id(value: Instant) -> str:
    """Encode a recurrence instant as a canonical, full-precision string.

    - dates: ``2024-01-08``
    - aware datetimes: ``2024-01-08T09:00:00.000000Z`` (UTC)
    - floating datetimes: ``2024-01-08T09:00:00.000000``

    Microseconds are kept: two candidates within the same minute (or second)
    must not collapse onto one identity.
    """
    if is_date_instant(value):
        return value.isoformat()
    if value.tzinfo is None:
        return value.strftime("%Y-%m-%dT%H:%M:%S.%f")
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_instant(value: Union[str, Instant]) -> Instant:
    """Parse an instant from text or pass a date/datetime through.

    Accepts ISO-8601 (``2024-01-08``, ``2024-01-08T09:00:00Z``,
    ``2024-01-08T09:00:00+01:00``) and the RFC 5545 basic form
    (``20240108``, ``20240108T090000Z``).

    Raises:
        ValueError: If the text is not a recognizable instant
    """
    if isinstance(value, (date, datetime)):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Unsupported instant value: {value!r}")

    text = value.strip()
    if _BASIC_DATE_RE.match(text):
        return datetime.strptime(text, "%Y%m%d").date()
    if _EXTENDED_DATE_RE.match(text):
        return date.fromisoformat(text)
    return date_parser.isoparse(text)


@dataclass(frozen=True)
class Window:
    """Query window; either bound may be absent (unbounded on that side)."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @classmethod
    def between(
        cls,
        start: Optional[Instant],
        end: Optional[Instant],
        local_tz: tzinfo = UTC,
    ) -> "Window":
        """Build a window from dates or datetimes, normalizing to aware datetimes.

        A date used as the end bound covers that whole day.
        """
        start_dt = to_timeline(start, local_tz) if start is not None else None
        end_dt = None
        if end is not None:
            if is_date_instant(end):
                end_dt = to_timeline(end + timedelta(days=1), local_tz) - ONE_TICK
            else:
                end_dt = to_timeline(end, local_tz)
        if start_dt is not None and end_dt is not None and end_dt < start_dt:
            raise ValueError("Window end is before window start")
        return cls(start=start_dt, end=end_dt)

    def contains_start(self, value: datetime) -> bool:
        """Return True when ``value`` is not past the window end."""
        return self.end is None or value <= self.end


@dataclass(frozen=True)
class EntryInterval:
    """Timeline footprint of an entry used for overlap tests."""

    start: Instant
    end: Optional[Instant]
    all_day: bool
    local_tz: tzinfo = UTC

    @property
    def start_time(self) -> datetime:
        return to_timeline(self.start, self.local_tz)

    def effective_end_for_overlap(self) -> datetime:
        """Return the last instant the entry occupies.

        All-day entries store an exclusive-midnight end (the day after the last
        included day). One tick is taken off so a single-day entry does not
        reach into the next day. An all-day entry without an end covers its own
        day; a timed entry without an end is a point.
        """
        start = self.start_time
        if self.end is None:
            if self.all_day:
                return start + timedelta(days=1) - ONE_TICK
            return start

        end = to_timeline(self.end, self.local_tz)
        if self.all_day and end > start:
            return end - ONE_TICK
        return end

    def overlaps(
        self,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> bool:
        """Return True if the entry intersects the window (bounds inclusive)."""
        if window_end is not None and self.start_time > window_end:
            return False
        if window_start is not None and self.effective_end_for_overlap() < window_start:
            return False
        return True

    def overlaps_window(self, window: Window) -> bool:
        return self.overlaps(window.start, window.end)
