"""Window expansion pipeline: series and singletons in, reconciled occurrences out."""

import logging
from collections.abc import Awaitable, Iterable
from datetime import datetime, tzinfo
from typing import Any, Callable, Optional, Union

from .event_parser import IcsComponentParser
from .exceptions import FeedParseError
from .interval import Window, to_timeline
from .models import (
    CalendarEntry,
    ExceptionOccurrence,
    FeedComponents,
    FeedSource,
    RecurrenceException,
    Series,
    SingletonOccurrence,
)
from .override_index import filter_overrides
from .reconciler import AnyOccurrence, reconcile
from .rrule_expander import RecurrenceExpander

logger = logging.getLogger(__name__)

__all__ = [
    "FeedLoader",
    "expand_components",
    "expand_window",
    "filter_overrides",
    "sort_key",
]


def expand_window(
    series_list: Iterable[Series],
    singleton_list: Iterable[CalendarEntry],
    window: Window,
    *,
    expander: RecurrenceExpander,
    orphan_exceptions: Iterable[RecurrenceException] = (),
) -> list[AnyOccurrence]:
    """Produce the reconciled occurrences of a feed inside a window.

    Args:
        series_list: Recurring entries
        singleton_list: Non-recurring entries
        window: Query window
        expander: Recurrence expander (owns the iteration bound and local timezone)
        orphan_exceptions: Exceptions whose series is not in the feed; they are
            kept as added occurrences

    Returns:
        Occurrences with canonical identities, unique per (series_id, instance_id)
    """
    local_tz = expander.local_tz
    raw_occurrences = []
    exceptions_applied = []

    for series in series_list:
        result = expander.expand_window(series, window)
        raw_occurrences.extend(result.occurrences)
        exceptions_applied.extend(result.exceptions_applied)

    for orphan in orphan_exceptions:
        if orphan.entry.interval(local_tz).overlaps_window(window):
            exceptions_applied.append(
                ExceptionOccurrence(
                    entry=orphan.entry,
                    series_id=orphan.series_id,
                    recurrence_id=orphan.recurrence_id,
                    added=True,
                )
            )

    singletons = [
        SingletonOccurrence(entry=entry, series_id=entry.uid)
        for entry in singleton_list
        if entry.interval(local_tz).overlaps_window(window)
    ]

    return reconcile(raw_occurrences, exceptions_applied, singletons)


def expand_components(
    components: FeedComponents, window: Window, expander: RecurrenceExpander
) -> list[AnyOccurrence]:
    """Expand a parsed feed over a window."""
    return expand_window(
        components.series,
        components.singletons,
        window,
        expander=expander,
        orphan_exceptions=components.orphan_exceptions,
    )


def sort_key(local_tz: tzinfo) -> Callable[[AnyOccurrence], tuple[datetime, str, str]]:
    """Sort occurrences by timeline start, then title, then series id."""

    def key(occurrence: AnyOccurrence) -> tuple[datetime, str, str]:
        return (to_timeline(occurrence.start, local_tz), occurrence.title, occurrence.series_id)

    return key


class FeedLoader:
    """Fetch and parse one feed.

    Instances are the fetch function handed to FeedCache, so the cache holds
    parsed components and every query window is expanded from them.
    """

    def __init__(
        self,
        fetcher: Union[Any, Callable[[FeedSource], Awaitable[str]]],
        parser: Optional[IcsComponentParser] = None,
    ) -> None:
        """Initialize the loader.

        Args:
            fetcher: IcsFetcher, or any coroutine function returning feed text
            parser: Component parser
        """
        self._fetch = getattr(fetcher, "fetch_ics", fetcher)
        self.parser = parser or IcsComponentParser()

    async def __call__(self, source: FeedSource) -> FeedComponents:
        raw_text = await self._fetch(source)
        try:
            components = self.parser.parse(raw_text)
        except FeedParseError as e:
            raise FeedParseError(e.message, source.name) from e

        if components.skipped:
            logger.warning("Feed %s: skipped %d invalid events", source.name, components.skipped)

        logger.debug(
            "Feed %s parsed: %d series, %d singletons, %d orphan exceptions",
            source.name,
            len(components.series),
            len(components.singletons),
            len(components.orphan_exceptions),
        )
        return components
