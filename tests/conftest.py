"""Shared test configuration and fixtures."""

from typing import Any

import pytest

from icsnotes.models import FeedSource


@pytest.fixture
def feed_source() -> FeedSource:
    return FeedSource(name="Work", url="https://calendar.example.com/work.ics")


@pytest.fixture
def weekly_ics() -> str:
    """Weekly Monday standup with one moved instance and one cancelled instance."""
    return "\r\n".join(
        [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            "PRODID:-//icsnotes//tests//EN",
            "X-WR-CALNAME:Work",
            "BEGIN:VEVENT",
            "UID:standup@example.com",
            "SUMMARY:Standup",
            "DTSTART:20240101T090000Z",
            "DTEND:20240101T093000Z",
            "RRULE:FREQ=WEEKLY;COUNT=6",
            "EXDATE:20240122T090000Z",
            "END:VEVENT",
            "BEGIN:VEVENT",
            "UID:standup@example.com",
            "RECURRENCE-ID:20240108T090000Z",
            "SUMMARY:Standup (moved)",
            "DTSTART:20240108T110000Z",
            "DTEND:20240108T113000Z",
            "END:VEVENT",
            "BEGIN:VEVENT",
            "UID:standup@example.com",
            "RECURRENCE-ID:20240129T090000Z",
            "STATUS:CANCELLED",
            "SUMMARY:Standup",
            "DTSTART:20240129T090000Z",
            "DTEND:20240129T093000Z",
            "END:VEVENT",
            "BEGIN:VEVENT",
            "UID:lunch@example.com",
            "SUMMARY:Team lunch",
            "DTSTART:20240110T120000Z",
            "DTEND:20240110T130000Z",
            "END:VEVENT",
            "BEGIN:VEVENT",
            "UID:holiday@example.com",
            "SUMMARY:Holiday",
            "DTSTART;VALUE=DATE:20240115",
            "END:VEVENT",
            "END:VCALENDAR",
            "",
        ]
    )


def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests wiring several components together")
