"""Async HTTP client for downloading iCalendar feeds."""

import asyncio
import logging
import random
from collections.abc import Awaitable
from typing import Any, Callable, Optional
from urllib.parse import urlparse

import httpx

from .exceptions import (
    FeedAuthError,
    FeedFetchError,
    FeedNetworkError,
    FeedTimeoutError,
)
from .models import FeedSource

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "text/calendar, text/plain;q=0.9, */*;q=0.8",
    "User-Agent": "icsnotes/1.0",
}

# Backoff calculation constants
MAX_BACKOFF_SECONDS = 30.0
JITTER_MIN_FACTOR = 0.1
JITTER_MAX_FACTOR = 0.3

Sleep = Callable[[float], Awaitable[Any]]


class IcsFetcher:
    """Downloads feed text with auth headers and retry on transient failures."""

    def __init__(
        self,
        settings: Any = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the fetcher.

        Args:
            settings: Object providing request_timeout, max_retries and
                retry_backoff_factor (defaults are used when missing)
            client: Optional shared client; the fetcher never closes it
            sleep: Coroutine used to wait between retries
        """
        self.settings = settings
        self.max_retries = int(getattr(settings, "max_retries", 2))
        self.backoff_factor = float(getattr(settings, "retry_backoff_factor", 1.5))
        self.request_timeout = float(getattr(settings, "request_timeout", 30))
        self._shared_client = client
        self._owned_clients: dict[bool, httpx.AsyncClient] = {}
        self._sleep = sleep

        logger.debug("ICS fetcher initialized (shared_client: %s)", client is not None)

    async def __aenter__(self) -> "IcsFetcher":
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close clients this fetcher created; a shared client is left open."""
        for client in self._owned_clients.values():
            if not client.is_closed:
                await client.aclose()
        self._owned_clients.clear()

    def _client_for(self, source: FeedSource) -> httpx.AsyncClient:
        if self._shared_client is not None:
            return self._shared_client

        client = self._owned_clients.get(source.validate_ssl)
        if client is None or client.is_closed:
            timeout = httpx.Timeout(connect=10.0, read=self.request_timeout, write=10.0, pool=30.0)
            client = httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                verify=source.validate_ssl,
                headers=DEFAULT_HEADERS,
            )
            self._owned_clients[source.validate_ssl] = client
        return client

    @staticmethod
    def validate_url(url: str) -> bool:
        """Return True for http(s) URLs with a hostname."""
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            logger.debug("Blocked non-HTTP(S) URL: %s", url)
            return False
        if not parsed.hostname:
            logger.debug("Blocked URL with missing hostname: %s", url)
            return False
        return True

    async def fetch_ics(self, source: FeedSource) -> str:
        """Download the feed text of a source.

        Args:
            source: Feed source configuration

        Returns:
            Response body as text

        Raises:
            FeedAuthError: Server answered 401 or 403
            FeedTimeoutError: Request timed out after all retries
            FeedNetworkError: Connection failed after all retries
            FeedFetchError: Invalid URL or any other HTTP failure
        """
        if not self.validate_url(source.url):
            raise FeedFetchError(f"Unsupported feed URL: {source.url}", source.name)

        headers = {**source.auth.get_headers(), **source.custom_headers}

        try:
            response = await self._make_request_with_retry(source, headers)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                raise FeedAuthError(
                    f"Authentication failed for {source.name} (HTTP {status})",
                    source.name,
                    status,
                ) from e
            raise FeedFetchError(
                f"HTTP {status} fetching {source.name}: {e.response.reason_phrase}",
                source.name,
                status,
            ) from e
        except httpx.TimeoutException as e:
            raise FeedTimeoutError(f"Timeout fetching {source.name}", source.name) from e
        except httpx.NetworkError as e:
            raise FeedNetworkError(f"Network error fetching {source.name}: {e}", source.name) from e
        except httpx.HTTPError as e:
            raise FeedFetchError(f"Error fetching {source.name}: {e}", source.name) from e

        return response.text

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with jitter, capped at MAX_BACKOFF_SECONDS."""
        base_backoff = min(self.backoff_factor**attempt, MAX_BACKOFF_SECONDS)
        jitter = random.uniform(JITTER_MIN_FACTOR, JITTER_MAX_FACTOR) * base_backoff  # nosec B311
        return base_backoff + jitter

    async def _make_request_with_retry(
        self, source: FeedSource, headers: dict[str, str]
    ) -> httpx.Response:
        client = self._client_for(source)
        attempt = 0

        while True:
            try:
                logger.debug("Fetching ICS from %s (attempt %d)", source.url, attempt + 1)
                response = await client.get(
                    source.url, headers=headers, timeout=source.timeout, follow_redirects=True
                )
                response.raise_for_status()
                logger.debug(
                    "Fetched ICS from %s - %d bytes", source.url, len(response.content)
                )
                return response

            except httpx.HTTPStatusError as e:
                # Client errors are not retried
                if e.response.status_code < 500 or attempt >= self.max_retries:
                    raise
                error: Exception = e

            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if attempt >= self.max_retries:
                    logger.warning("All retry attempts failed for %s: %s", source.url, e)
                    raise
                error = e

            backoff_time = self._calculate_backoff(attempt)
            logger.warning(
                "Request failed (attempt %s/%s), retrying in %.1fs: %s",
                attempt + 1,
                self.max_retries + 1,
                backoff_time,
                error,
            )
            await self._sleep(backoff_time)
            attempt += 1
