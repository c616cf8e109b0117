"""iCalendar component parsing.

Splits feed text into series, singletons and orphan exceptions using the
``icalendar`` library. Nothing is expanded here.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import Any, Optional

from icalendar import Calendar
from icalendar.cal import Component
from pydantic import ValidationError

from .exceptions import EntryError, FeedParseError
from .interval import Instant, is_date_instant
from .models import (
    CalendarEntry,
    FeedComponents,
    RecurrenceException,
    RecurrenceRule,
    Series,
)

logger = logging.getLogger(__name__)

CANCELLED_STATUS = "CANCELLED"


def _as_list(prop: Any) -> list[Any]:
    if prop is None:
        return []
    if isinstance(prop, list):
        return prop
    return [prop]


def _text(component: Component, name: str) -> Optional[str]:
    value = component.get(name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _instant(prop: Any) -> Optional[Instant]:
    value = getattr(prop, "dt", prop)
    if isinstance(value, (date, datetime)):
        return value
    return None


def _instants(prop: Any) -> list[Instant]:
    """Flatten EXDATE/RDATE properties (possibly repeated) into instants.

    RDATE periods are not supported and are dropped.
    """
    values: list[Instant] = []
    for item in _as_list(prop):
        for entry in getattr(item, "dts", [item]):
            value = _instant(entry)
            if value is None:
                logger.debug("Ignoring unsupported date list value %r", entry)
                continue
            values.append(value)
    return values


class IcsComponentParser:
    """Parse iCalendar text into FeedComponents."""

    def parse(self, raw_text: str) -> FeedComponents:
        """Parse raw iCalendar text.

        Args:
            raw_text: Feed body

        Returns:
            FeedComponents with series, singletons and orphan exceptions

        Raises:
            FeedParseError: If the text is not a calendar
        """
        calendar = self._load_calendar(raw_text)

        masters: dict[str, Series] = {}
        singletons: list[CalendarEntry] = []
        singleton_uids: set[str] = set()
        exceptions: list[RecurrenceException] = []
        cancelled: list[RecurrenceException] = []
        skipped = 0

        for component in calendar.walk("VEVENT"):
            try:
                entry = self._parse_entry(component)
            except EntryError as e:
                skipped += 1
                logger.warning("Skipping invalid event: %s", e)
                continue

            is_cancelled = (_text(component, "STATUS") or "").upper() == CANCELLED_STATUS

            if component.get("RECURRENCE-ID") is not None:
                recurrence_id = _instant(component.get("RECURRENCE-ID"))
                if recurrence_id is None:
                    skipped += 1
                    logger.warning(
                        "Skipping exception of %s with unreadable RECURRENCE-ID", entry.uid
                    )
                    continue
                exception = RecurrenceException(entry=entry, recurrence_id=recurrence_id)
                (cancelled if is_cancelled else exceptions).append(exception)
                continue

            rule = self._parse_rule(component)
            if rule.is_empty:
                if is_cancelled:
                    logger.debug("Dropping cancelled event %s", entry.uid)
                    continue
                if entry.uid in singleton_uids:
                    logger.debug("Dropping duplicate event %s", entry.uid)
                    continue
                singleton_uids.add(entry.uid)
                singletons.append(entry)
                continue

            if entry.uid in masters:
                logger.debug("Ignoring duplicate recurring master for %s", entry.uid)
                continue
            masters[entry.uid] = Series(
                base=entry,
                rule=rule,
                exclusions=tuple(_instants(component.get("EXDATE"))),
            )

        # A recurring master takes precedence over a plain event with the same UID
        singletons = [entry for entry in singletons if entry.uid not in masters]

        orphans = self._attach_exceptions(masters, exceptions, cancelled)

        result = FeedComponents(
            series=list(masters.values()),
            singletons=singletons,
            orphan_exceptions=orphans,
            skipped=skipped,
            calendar_name=_text(calendar, "X-WR-CALNAME"),
        )
        logger.debug(
            "Parsed feed: %d series, %d singletons, %d orphan exceptions, %d skipped",
            len(result.series),
            len(result.singletons),
            len(result.orphan_exceptions),
            result.skipped,
        )
        return result

    @staticmethod
    def _load_calendar(raw_text: str) -> Calendar:
        if not raw_text or not raw_text.strip():
            raise FeedParseError("Empty calendar content")
        if "BEGIN:VCALENDAR" not in raw_text:
            raise FeedParseError("Missing BEGIN:VCALENDAR marker")
        try:
            return Calendar.from_ical(raw_text)
        except (ValueError, IndexError, KeyError) as e:
            raise FeedParseError(f"Malformed calendar content: {e}") from e

    def _parse_entry(self, component: Component) -> CalendarEntry:
        uid = _text(component, "UID")
        if not uid:
            raise EntryError("missing UID")

        start = _instant(component.get("DTSTART"))
        if start is None:
            raise EntryError(f"{uid}: missing or unreadable DTSTART")

        all_day = is_date_instant(start)
        end = self._parse_end(component, start, all_day)

        try:
            return CalendarEntry(
                uid=uid,
                title=_text(component, "SUMMARY") or "",
                description=_text(component, "DESCRIPTION"),
                location=_text(component, "LOCATION"),
                start=start,
                end=end,
                all_day=all_day,
            )
        except ValidationError as e:
            raise EntryError(f"{uid}: {e.errors()[0]['msg']}") from e

    @staticmethod
    def _parse_end(component: Component, start: Instant, all_day: bool) -> Optional[Instant]:
        if component.get("DTEND") is not None:
            end = _instant(component.get("DTEND"))
            if end is None:
                raise EntryError("unreadable DTEND")
            return end

        duration = getattr(component.get("DURATION"), "dt", None)
        if isinstance(duration, timedelta):
            return start + duration

        # RFC 5545: an all-day event without DTEND or DURATION lasts one day
        if all_day:
            return start + timedelta(days=1)
        return None

    @staticmethod
    def _parse_rule(component: Component) -> RecurrenceRule:
        rrules = _as_list(component.get("RRULE"))
        text = ""
        if rrules:
            if len(rrules) > 1:
                logger.warning(
                    "Event %s has %d RRULE properties; using the first",
                    _text(component, "UID"),
                    len(rrules),
                )
            rrule_prop = rrules[0]
            if hasattr(rrule_prop, "to_ical"):
                text = rrule_prop.to_ical().decode("utf-8")
            else:
                text = str(rrule_prop)

        return RecurrenceRule(text=text, rdates=tuple(_instants(component.get("RDATE"))))

    @staticmethod
    def _attach_exceptions(
        masters: dict[str, Series],
        exceptions: Iterable[RecurrenceException],
        cancelled: Iterable[RecurrenceException],
    ) -> list[RecurrenceException]:
        extra_exceptions: dict[str, list[RecurrenceException]] = {}
        extra_exclusions: dict[str, list[Instant]] = {}
        orphans: list[RecurrenceException] = []

        for exception in exceptions:
            if exception.series_id in masters:
                extra_exceptions.setdefault(exception.series_id, []).append(exception)
            else:
                orphans.append(exception)

        for exception in cancelled:
            if exception.series_id in masters:
                extra_exclusions.setdefault(exception.series_id, []).append(exception.recurrence_id)
            else:
                logger.debug("Dropping cancelled orphan exception of %s", exception.series_id)

        for series_id in set(extra_exceptions) | set(extra_exclusions):
            series = masters[series_id]
            masters[series_id] = series.model_copy(
                update={
                    "exceptions": series.exceptions + tuple(extra_exceptions.get(series_id, ())),
                    "exclusions": series.exclusions + tuple(extra_exclusions.get(series_id, ())),
                }
            )

        if orphans:
            logger.debug("Found %d exceptions without a recurring master", len(orphans))
        return orphans
