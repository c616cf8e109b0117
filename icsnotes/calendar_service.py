"""Multi-source orchestration: feeds through the cache, local notes, overrides."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Any, Optional

import httpx

from .event_parser import IcsComponentParser
from .feed_cache import FeedCache, FeedResult
from .fetcher import IcsFetcher
from .interval import UTC, Window
from .models import FeedComponents, FeedSource, SingletonOccurrence
from .note_source import LocalNoteSource, NoteScan
from .override_index import OverrideIndex, filter_overrides
from .pipeline import FeedLoader, expand_components, sort_key
from .reconciler import AnyOccurrence
from .rrule_expander import RecurrenceExpander, RRuleExpanderConfig
from .settings import IcsNotesSettings
from .timezone_utils import resolve_timezone

logger = logging.getLogger(__name__)


@dataclass
class CalendarSnapshot:
    """Best-effort view of a window plus anything the user should be told."""

    occurrences: list[AnyOccurrence] = field(default_factory=list)
    stale_sources: list[str] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)

    @property
    def is_stale(self) -> bool:
        return bool(self.stale_sources)


class CalendarService:
    """Combines remote feeds and local notes into one occurrence list."""

    def __init__(
        self,
        sources: Sequence[FeedSource],
        cache: FeedCache,
        note_source: Optional[LocalNoteSource] = None,
        local_tz: tzinfo = UTC,
        fetch_concurrency: int = 2,
        fetcher: Optional[IcsFetcher] = None,
        expander: Optional[RecurrenceExpander] = None,
    ) -> None:
        """Initialize the service.

        Args:
            sources: Configured feeds
            cache: Feed cache holding each source's parsed FeedComponents
            note_source: Local notes folder (None for feeds only)
            local_tz: Timezone for all-day and floating times
            fetch_concurrency: Maximum feeds refreshed at once
            fetcher: Fetcher to close on aclose(), when the service owns it
            expander: Recurrence expander used for every query window
        """
        self.sources = list(sources)
        self.cache = cache
        self.note_source = note_source
        self.local_tz = local_tz
        self.fetch_concurrency = max(1, fetch_concurrency)
        self.expander = expander or RecurrenceExpander(local_tz=local_tz)
        self._fetcher = fetcher

    @classmethod
    def from_settings(
        cls, settings: IcsNotesSettings, client: Optional[httpx.AsyncClient] = None
    ) -> "CalendarService":
        """Wire the default collaborators from settings.

        Args:
            settings: Loaded settings
            client: Optional shared HTTP client (used by tests)
        """
        local_tz = resolve_timezone(settings.default_timezone)
        expander_config = RRuleExpanderConfig.from_settings(settings)
        expander = RecurrenceExpander(
            max_iterations=expander_config.max_iterations, local_tz=local_tz
        )
        fetcher = IcsFetcher(settings, client=client)
        cache = FeedCache(
            FeedLoader(fetcher, IcsComponentParser()),
            ttl_seconds=settings.cache_ttl_seconds,
            failure_retry_seconds=settings.failure_retry_seconds,
            empty=FeedComponents,
        )
        note_source = LocalNoteSource(settings.notes_folder) if settings.notes_folder else None
        return cls(
            settings.feeds,
            cache,
            note_source=note_source,
            local_tz=local_tz,
            fetch_concurrency=settings.fetch_concurrency,
            fetcher=fetcher,
            expander=expander,
        )

    async def __aenter__(self) -> "CalendarService":
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.cache.wait_idle()
        if self._fetcher is not None:
            await self._fetcher.close()

    async def refresh_feeds(self) -> list[tuple[FeedSource, FeedResult]]:
        """Get every source's components through the cache with bounded concurrency."""
        if not self.sources:
            return []

        semaphore = asyncio.Semaphore(self.fetch_concurrency)

        async def load(source: FeedSource) -> FeedResult:
            async with semaphore:
                return await self.cache.get_cached_or_refresh(source)

        results = await asyncio.gather(
            *(load(source) for source in self.sources), return_exceptions=True
        )

        collected = []
        for source, result in zip(self.sources, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.error("Source %s failed: %s", source.name, result)
                result = FeedResult(
                    FeedComponents(), True, f"Could not load {source.name}: {result}"
                )
            collected.append((source, result))
        return collected

    def _expand(
        self, components: Optional[FeedComponents], window: Window
    ) -> list[AnyOccurrence]:
        # An empty cache slot holds whatever the cache's empty factory made
        if not isinstance(components, FeedComponents):
            return []
        return expand_components(components, window, self.expander)

    async def _scan_notes(self) -> NoteScan:
        if self.note_source is None:
            return NoteScan([], OverrideIndex())
        try:
            return await asyncio.to_thread(self.note_source.scan)
        except Exception:
            logger.exception("Failed to scan notes folder %s", self.note_source.folder)
            return NoteScan([], OverrideIndex())

    async def occurrences_between(self, window: Window) -> CalendarSnapshot:
        """Return every occurrence overlapping the window, sorted by start.

        Each feed's cached components are expanded over exactly this window.
        Feed occurrences owned by a local note are removed; the note's own
        entry is listed instead. Never raises for feed or note failures.
        """
        snapshot = CalendarSnapshot()
        feed_occurrences: list[AnyOccurrence] = []

        for source, result in await self.refresh_feeds():
            if result.is_stale:
                snapshot.stale_sources.append(source.name)
            if result.notice:
                snapshot.notices.append(result.notice)
            try:
                feed_occurrences.extend(self._expand(result.data, window))
            except Exception as e:
                logger.exception("Failed to expand feed %s", source.name)
                if source.name not in snapshot.stale_sources:
                    snapshot.stale_sources.append(source.name)
                snapshot.notices.append(f"Could not expand {source.name}: {e}")

        scan = await self._scan_notes()
        note_occurrences = [
            SingletonOccurrence(entry=entry, series_id=entry.uid)
            for entry in scan.entries
            if entry.interval(self.local_tz).overlaps_window(window)
        ]

        kept = filter_overrides(feed_occurrences, scan.override_index)
        snapshot.occurrences = sorted(kept + note_occurrences, key=sort_key(self.local_tz))
        logger.debug(
            "Window %s..%s: %d feed occurrences (%d overridden), %d note entries",
            window.start,
            window.end,
            len(feed_occurrences),
            len(feed_occurrences) - len(kept),
            len(note_occurrences),
        )
        return snapshot
