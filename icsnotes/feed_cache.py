"""Time-boxed feed cache with single-flight refresh and stale-on-error fallback."""

import asyncio
import dataclasses
import logging
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, NamedTuple, Optional

from .exceptions import IcsNotesError
from .models import FeedSource

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_FAILURE_RETRY_SECONDS = 60.0

FetchFunction = Callable[[FeedSource], Awaitable[Any]]


class CacheState(str, Enum):
    """Lifecycle of one cached source."""

    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"


@dataclass(frozen=True)
class CacheEntry:
    """Snapshot of one source's cache slot. Replaced, never mutated."""

    ttl_seconds: float
    state: CacheState = CacheState.EMPTY
    data: Any = None
    fetched_at: Optional[float] = None
    last_error: Optional[str] = None
    failed_at: Optional[float] = None
    invalidated: bool = False


class FeedResult(NamedTuple):
    """What a caller gets back for one source."""

    data: Any
    is_stale: bool
    notice: Optional[str] = None


class FeedCache:
    """Per-source cache of whatever the fetch function produces for a source.

    The service caches parsed feed components; expansion into occurrences
    happens per query. Cached values are shared between callers and must be
    treated as read-only.

    Concurrent callers for one source share a single in-flight refresh. A
    caller that gives up (cancellation, timeout) does not cancel the refresh;
    it completes and populates the cache for the next caller.
    """

    def __init__(
        self,
        fetch: FetchFunction,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        failure_retry_seconds: float = DEFAULT_FAILURE_RETRY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        empty: Callable[[], Any] = list,
    ) -> None:
        """Initialize the cache.

        Args:
            fetch: Coroutine function producing the cached value of a source
            ttl_seconds: Default freshness period (FeedSource.refresh_interval wins)
            failure_retry_seconds: Wait after a failed refresh before retrying
            clock: Monotonic clock in seconds
            empty: Factory for the value returned while nothing was ever fetched
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if failure_retry_seconds < 0:
            raise ValueError("failure_retry_seconds must not be negative")
        self._fetch = fetch
        self.ttl_seconds = float(ttl_seconds)
        self.failure_retry_seconds = float(failure_retry_seconds)
        self._clock = clock
        self._empty = empty
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    def entry(self, source: FeedSource) -> CacheEntry:
        """Return the current cache slot of a source."""
        return self._entries.get(source.cache_key) or self._new_entry(source)

    def _new_entry(self, source: FeedSource) -> CacheEntry:
        ttl = source.refresh_interval or self.ttl_seconds
        return CacheEntry(ttl_seconds=float(ttl))

    def _needs_refresh(self, entry: CacheEntry, now: float) -> bool:
        if entry.invalidated:
            return True
        if entry.failed_at is not None and now - entry.failed_at < self.failure_retry_seconds:
            return False
        if entry.state is CacheState.FRESH and entry.fetched_at is not None:
            return now - entry.fetched_at >= entry.ttl_seconds
        return True

    def _value_of(self, entry: CacheEntry) -> Any:
        return self._empty() if entry.state is CacheState.EMPTY else entry.data

    def _cached_result(self, entry: CacheEntry) -> FeedResult:
        return FeedResult(self._value_of(entry), entry.state is not CacheState.FRESH)

    async def get_cached_or_refresh(self, source: FeedSource) -> FeedResult:
        """Return the source's cached value, refreshing when the TTL has elapsed.

        Never raises for fetch failures: the previous value (or an empty one)
        is returned with ``is_stale=True``. The caller that started the failed
        refresh also gets a notice describing the failure; callers that joined
        it, and calls within ``failure_retry_seconds`` of it, get none.
        """
        key = source.cache_key
        entry = self.entry(source)
        if not self._needs_refresh(entry, self._clock()):
            return self._cached_result(entry)

        task = self._inflight.get(key)
        started = task is None
        if started:
            logger.debug("Refreshing feed %s", source.name)
            task = asyncio.create_task(self._refresh(source), name=f"feed-refresh:{source.name}")
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        else:
            logger.debug("Joining in-flight refresh of %s", source.name)

        result = await asyncio.shield(task)
        if not started and result.notice is not None:
            return result._replace(notice=None)
        return result

    get = get_cached_or_refresh

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _refresh(self, source: FeedSource) -> FeedResult:
        key = source.cache_key
        try:
            data = await self._fetch(source)
        except IcsNotesError as e:
            return self._record_failure(source, e.message)
        except Exception as e:
            logger.exception("Unexpected error refreshing feed %s", source.name)
            return self._record_failure(source, str(e) or type(e).__name__)

        entry = CacheEntry(
            ttl_seconds=self.entry(source).ttl_seconds,
            state=CacheState.FRESH,
            data=data,
            fetched_at=self._clock(),
        )
        self._entries[key] = entry
        logger.debug("Cached feed %s", source.name)
        return self._cached_result(entry)

    def _record_failure(self, source: FeedSource, message: str) -> FeedResult:
        previous = self.entry(source)
        had_data = previous.state is not CacheState.EMPTY
        entry = dataclasses.replace(
            previous,
            state=CacheState.STALE if had_data else CacheState.EMPTY,
            last_error=message,
            failed_at=self._clock(),
            invalidated=False,
        )
        self._entries[source.cache_key] = entry

        if had_data:
            notice = f"Could not refresh {source.name}: {message}. Showing cached events."
        else:
            notice = f"Could not load {source.name}: {message}"
        logger.warning("Feed %s refresh failed: %s", source.name, message)
        return FeedResult(self._value_of(entry), True, notice)

    def invalidate(self, source: FeedSource) -> None:
        """Force the next get() to refresh; the cached value stays as fallback."""
        entry = self.entry(source)
        self._entries[source.cache_key] = dataclasses.replace(
            entry, invalidated=True, failed_at=None
        )

    def clear(self) -> None:
        """Drop every cached entry. In-flight refreshes still complete."""
        self._entries.clear()

    async def wait_idle(self) -> None:
        """Wait for all in-flight refreshes to finish."""
        tasks = list(self._inflight.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
