"""icsnotes - expand iCalendar feeds into occurrences alongside local event notes."""

from .calendar_service import CalendarService, CalendarSnapshot
from .feed_cache import CacheState, FeedCache, FeedResult
from .interval import Window
from .models import (
    CalendarEntry,
    ExceptionOccurrence,
    FeedSource,
    Occurrence,
    RecurrenceException,
    RecurrenceRule,
    Series,
    SeriesOccurrence,
    SingletonOccurrence,
)
from .override_index import OverrideIdentity, OverrideIndex, filter_overrides
from .pipeline import expand_window
from .rrule_expander import RecurrenceExpander

__version__ = "1.0.0"

__all__ = [
    "CacheState",
    "CalendarEntry",
    "CalendarService",
    "CalendarSnapshot",
    "ExceptionOccurrence",
    "FeedCache",
    "FeedResult",
    "FeedSource",
    "Occurrence",
    "OverrideIdentity",
    "OverrideIndex",
    "RecurrenceException",
    "RecurrenceExpander",
    "RecurrenceRule",
    "Series",
    "SeriesOccurrence",
    "SingletonOccurrence",
    "Window",
    "__version__",
    "expand_window",
    "filter_overrides",
]
