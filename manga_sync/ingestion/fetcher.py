"""
Catalog Fetcher Module
======================

Fetches catalog payloads from source APIs with per-source rate
limiting and a hard request timeout, and hands them to the
normalizer.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx

from manga_sync.core.enums import FetchKind
from manga_sync.ingestion.normalizer import CatalogEntry, Normalizer
from manga_sync.ingestion.registry import DEFAULT_USER_AGENT

if TYPE_CHECKING:
    from manga_sync.ingestion.events import EventLog
    from manga_sync.ingestion.registry import GlobalConfig, SourceConfig

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Result of fetching a source catalog."""

    url: str
    status_code: int
    fetched_at: datetime
    payload: Any = None
    content_hash: str = ""
    error: str | None = None

    @property
    def success(self) -> bool:
        """Check if fetch was successful."""
        return self.error is None and 200 <= self.status_code < 300


class TokenBucket:
    """
    Token bucket rate limiter for per-source rate limiting.

    Allows bursting up to burst_limit requests, then enforces
    the steady-state rate of requests_per_second.
    """

    def __init__(self, requests_per_second: float, burst_limit: int = 1) -> None:
        self.requests_per_second = requests_per_second
        self.burst_limit = burst_limit
        self.tokens = float(burst_limit)
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    @classmethod
    def per_minute(cls, requests_per_minute: float, burst_limit: int = 1) -> TokenBucket:
        """Create a bucket from a requests-per-minute limit."""
        return cls(requests_per_second=requests_per_minute / 60.0, burst_limit=burst_limit)

    async def acquire(self) -> None:
        """
        Acquire a token, waiting if necessary.

        This method blocks until a token is available.
        """
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_update
            self.last_update = now

            # Add tokens based on elapsed time
            self.tokens = min(
                self.burst_limit, self.tokens + elapsed * self.requests_per_second
            )

            if self.tokens < 1.0:
                # Need to wait for tokens
                wait_time = (1.0 - self.tokens) / self.requests_per_second
                await asyncio.sleep(wait_time)
                self.tokens = 0.0
                self.last_update = time.monotonic()
            else:
                self.tokens -= 1.0


class CatalogFetcher:
    """
    Fetches and normalizes source catalogs.

    Features:
    - Per-source rate limiting with token bucket algorithm
    - Bearer token and custom header support
    - Hard request timeout
    - Never raises: failures are logged and produce an empty catalog
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
        max_retries: int = 1,
        normalizer: Normalizer | None = None,
        events: EventLog | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.normalizer = normalizer or Normalizer()
        self.events = events
        self.transport = transport

        self._rate_limiters: dict[str, TokenBucket] = {}

    @classmethod
    def from_config(
        cls,
        config: GlobalConfig,
        events: EventLog | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> CatalogFetcher:
        """Create a fetcher from global configuration."""
        return cls(
            user_agent=config.user_agent,
            timeout=float(config.request_timeout),
            max_retries=config.max_retries,
            events=events,
            transport=transport,
        )

    def _get_rate_limiter(self, source: SourceConfig) -> TokenBucket | None:
        """Get or create a rate limiter for a source with a rate limit."""
        if source.rate_limit is None:
            return None
        limiter = self._rate_limiters.get(source.id)
        if limiter is None or limiter.requests_per_second != source.rate_limit / 60.0:
            limiter = TokenBucket.per_minute(source.rate_limit)
            self._rate_limiters[source.id] = limiter
        return limiter

    def build_headers(self, source: SourceConfig) -> dict[str, str]:
        """Request headers for a source: user agent, custom headers, bearer token."""
        headers = {"User-Agent": self.user_agent, **source.headers}
        if source.api_key:
            headers["Authorization"] = f"Bearer {source.api_key}"
        return headers

    @staticmethod
    def compute_hash(content: bytes) -> str:
        """Compute SHA-256 hash of content."""
        return hashlib.sha256(content).hexdigest()

    async def fetch_raw(self, source: SourceConfig) -> FetchResult:
        """
        Fetch the raw catalog payload of a source.

        Args:
            source: Source to fetch

        Returns:
            FetchResult with the decoded JSON payload or an error
        """
        url = source.catalog_url
        fetched_at = datetime.now(UTC)

        limiter = self._get_rate_limiter(source)
        if limiter is not None:
            await limiter.acquire()

        last_error: str | None = None
        status_code = 0
        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self.transport
                ) as client:
                    # httpx timeouts are per phase; this bounds the whole request
                    async with asyncio.timeout(self.timeout):
                        response = await client.get(
                            url,
                            headers=self.build_headers(source),
                            follow_redirects=True,
                        )

                status_code = response.status_code
                if not response.is_success:
                    return FetchResult(
                        url=url,
                        status_code=status_code,
                        fetched_at=fetched_at,
                        error=f"HTTP {status_code}: {response.reason_phrase}",
                    )

                return FetchResult(
                    url=url,
                    status_code=status_code,
                    fetched_at=fetched_at,
                    payload=response.json(),
                    content_hash=self.compute_hash(response.content),
                )

            except (httpx.TimeoutException, TimeoutError):
                last_error = f"Timeout after {self.timeout}s"
                logger.warning(
                    f"Timeout fetching {url} (attempt {attempt + 1}/{self.max_retries})"
                )
            except httpx.HTTPError as e:
                last_error = str(e) or e.__class__.__name__
                logger.warning(
                    f"HTTP error fetching {url}: {e} (attempt {attempt + 1}/{self.max_retries})"
                )
            except ValueError as e:
                # Body is not valid JSON
                return FetchResult(
                    url=url,
                    status_code=status_code,
                    fetched_at=fetched_at,
                    error=f"Invalid JSON response: {e}",
                )

            # Wait before retry with exponential backoff
            if attempt < self.max_retries - 1:
                await asyncio.sleep(2**attempt)

        return FetchResult(
            url=url,
            status_code=status_code,
            fetched_at=fetched_at,
            error=last_error or "Unknown error",
        )

    async def fetch(self, source: SourceConfig) -> list[CatalogEntry]:
        """
        Fetch and normalize the catalog of a source.

        Args:
            source: Source to fetch

        Returns:
            Canonical entries; empty on any fetch or parse failure
        """
        if source.fetch_kind == FetchKind.SCRAPING:
            self._warn(
                source,
                f"Scraping is not supported in-process, skipping source: {source.name}",
            )
            return []

        try:
            result = await self.fetch_raw(source)
        except Exception as e:
            logger.exception(f"Unexpected error fetching source '{source.name}'")
            self._report_failure(source, source.catalog_url, str(e))
            return []

        if not result.success:
            self._report_failure(source, result.url, result.error or "Unknown error")
            return []

        try:
            entries = self.normalizer.parse_response(result.payload, source)
        except Exception as e:
            logger.exception(f"Failed to parse catalog of source '{source.name}'")
            self._report_failure(source, result.url, f"Parse error: {e}")
            return []

        logger.info(f"Fetched {len(entries)} entries from '{source.name}'")
        return entries

    def _warn(self, source: SourceConfig, message: str) -> None:
        if self.events is not None:
            self.events.warn(message, {"action": "fetch_skipped"}, "fetch", source.id)
        else:
            logger.warning(message)

    def _report_failure(self, source: SourceConfig, url: str, error: str) -> None:
        message = f"Failed to fetch catalog of source: {source.name}"
        if self.events is not None:
            self.events.error(
                message,
                {"action": "fetch_error", "url": url, "error": error},
                "fetch",
                source.id,
            )
        else:
            logger.error(f"{message}: {error}")
