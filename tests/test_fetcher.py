"""Tests for the catalog fetcher module."""

import asyncio
import time
from datetime import UTC, datetime

import httpx
import pytest

from manga_sync.core.enums import FetchKind
from manga_sync.ingestion.events import EventLog
from manga_sync.ingestion.fetcher import CatalogFetcher, FetchResult, TokenBucket
from manga_sync.ingestion.registry import GlobalConfig, SourceConfig

from conftest import catalog_transport, manga_item

CATALOG_URL = "https://api.example.com/api/manga"


@pytest.fixture
def source():
    return SourceConfig(
        id="src-1",
        name="Manga API",
        base_url="https://api.example.com",
        api_key="secret-token",
        headers={"Accept-Language": "ar"},
    )


class TestTokenBucket:
    """Tests for the TokenBucket rate limiter."""

    @pytest.mark.asyncio
    async def test_initial_burst(self) -> None:
        """Test that initial requests use burst tokens."""
        bucket = TokenBucket(requests_per_second=1.0, burst_limit=3)

        start = time.monotonic()
        for _ in range(3):
            await bucket.acquire()
        elapsed = time.monotonic() - start

        assert elapsed < 0.1

    @pytest.mark.asyncio
    async def test_rate_limiting(self) -> None:
        """Test that requests are rate limited after burst."""
        bucket = TokenBucket(requests_per_second=10.0, burst_limit=1)
        await bucket.acquire()

        start = time.monotonic()
        await bucket.acquire()
        elapsed = time.monotonic() - start

        assert 0.05 < elapsed < 0.3

    def test_per_minute(self) -> None:
        bucket = TokenBucket.per_minute(120)
        assert bucket.requests_per_second == 2.0


class TestFetchResult:
    """Tests for the FetchResult dataclass."""

    def test_success(self) -> None:
        result = FetchResult(url=CATALOG_URL, status_code=200, fetched_at=datetime.now(UTC))
        assert result.success is True

    def test_failure_status(self) -> None:
        result = FetchResult(url=CATALOG_URL, status_code=503, fetched_at=datetime.now(UTC))
        assert result.success is False

    def test_failure_error(self) -> None:
        result = FetchResult(
            url=CATALOG_URL, status_code=200, fetched_at=datetime.now(UTC), error="boom"
        )
        assert result.success is False


class TestCatalogFetcher:
    """Tests for CatalogFetcher."""

    def test_build_headers(self, source) -> None:
        """Test user agent, custom headers and bearer token."""
        fetcher = CatalogFetcher(user_agent="test-agent")
        headers = fetcher.build_headers(source)
        assert headers["User-Agent"] == "test-agent"
        assert headers["Accept-Language"] == "ar"
        assert headers["Authorization"] == "Bearer secret-token"

    def test_no_api_key(self) -> None:
        fetcher = CatalogFetcher()
        source = SourceConfig(id="x", name="x", base_url="https://x.example.com")
        assert "Authorization" not in fetcher.build_headers(source)

    def test_from_config(self) -> None:
        fetcher = CatalogFetcher.from_config(GlobalConfig(request_timeout=7, max_retries=3))
        assert fetcher.timeout == 7.0
        assert fetcher.max_retries == 3

    def test_rate_limiter_only_with_rate_limit(self, source) -> None:
        fetcher = CatalogFetcher()
        assert fetcher._get_rate_limiter(source) is None

        limited = SourceConfig(id="l", name="l", base_url="https://l.example.com", rate_limit=30)
        limiter = fetcher._get_rate_limiter(limited)
        assert limiter is not None
        assert limiter.requests_per_second == 0.5
        assert fetcher._get_rate_limiter(limited) is limiter

    @pytest.mark.asyncio
    async def test_fetch_sends_headers(self, source) -> None:
        """Test that the request carries the source credentials."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[manga_item("a", "Alpha")])

        fetcher = CatalogFetcher(transport=httpx.MockTransport(handler))
        entries = await fetcher.fetch(source)

        assert [e.title for e in entries] == ["Alpha"]
        assert seen[0].headers["Authorization"] == "Bearer secret-token"
        assert str(seen[0].url) == CATALOG_URL

    @pytest.mark.asyncio
    async def test_fetch_envelope(self, source) -> None:
        transport = catalog_transport(
            {CATALOG_URL: {"manga": [manga_item("a", "Alpha", chapters=range(1, 4))]}}
        )
        fetcher = CatalogFetcher(transport=transport)
        entries = await fetcher.fetch(source)
        assert len(entries) == 1
        assert len(entries[0].chapters) == 3

    @pytest.mark.asyncio
    async def test_fetch_raw_content_hash(self, source) -> None:
        transport = catalog_transport({CATALOG_URL: []})
        result = await CatalogFetcher(transport=transport).fetch_raw(source)
        assert result.success is True
        assert result.payload == []
        assert result.content_hash == CatalogFetcher.compute_hash(b"[]")

    @pytest.mark.asyncio
    async def test_http_error_yields_empty(self, source, session_factory) -> None:
        """Test that a failing source produces an empty list and an error entry."""
        events = EventLog(session_factory)
        transport = catalog_transport({}, status_codes={CATALOG_URL: 500})
        fetcher = CatalogFetcher(transport=transport, events=events)

        entries = await fetcher.fetch(source)

        assert entries == []
        logged = events.recent(source="fetch")
        assert len(logged) == 1
        assert logged[0].details["action"] == "fetch_error"
        assert logged[0].details["error"].startswith("HTTP 500")
        assert logged[0].source_id == "src-1"

    @pytest.mark.asyncio
    async def test_invalid_json(self, source) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>not json</html>")

        fetcher = CatalogFetcher(transport=httpx.MockTransport(handler))
        result = await fetcher.fetch_raw(source)

        assert result.success is False
        assert result.error.startswith("Invalid JSON response")
        assert await fetcher.fetch(source) == []

    @pytest.mark.asyncio
    async def test_timeout(self, source) -> None:
        """Test that a timeout is reported as an error, not raised."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        fetcher = CatalogFetcher(timeout=5.0, transport=httpx.MockTransport(handler))
        result = await fetcher.fetch_raw(source)

        assert result.success is False
        assert result.error == "Timeout after 5.0s"

    @pytest.mark.asyncio
    async def test_slow_response_hits_total_timeout(self, source) -> None:
        """Test that a response slower than the timeout is cut off as a whole."""

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json=[])

        fetcher = CatalogFetcher(timeout=0.05, transport=httpx.MockTransport(handler))
        started = time.monotonic()
        result = await fetcher.fetch_raw(source)

        assert time.monotonic() - started < 2
        assert result.success is False
        assert result.error == "Timeout after 0.05s"

    @pytest.mark.asyncio
    async def test_connection_error(self, source) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = CatalogFetcher(transport=httpx.MockTransport(handler))
        assert await fetcher.fetch(source) == []

    @pytest.mark.asyncio
    async def test_scraping_source_skipped(self, session_factory) -> None:
        """Test that scraping sources are skipped with a warning."""
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=[])

        events = EventLog(session_factory)
        source = SourceConfig(
            id="scrape",
            name="Scraped Site",
            base_url="https://scrape.example.com",
            fetch_kind=FetchKind.SCRAPING,
        )
        fetcher = CatalogFetcher(transport=httpx.MockTransport(handler), events=events)

        assert await fetcher.fetch(source) == []
        assert calls == []
        assert events.recent(source="fetch")[0].details == {"action": "fetch_skipped"}

    @pytest.mark.asyncio
    async def test_rate_limited_source_waits(self) -> None:
        """Test that back-to-back fetches of a rate-limited source are spaced out."""
        source = SourceConfig(
            id="fast", name="Fast", base_url="https://api.example.com", rate_limit=600
        )
        fetcher = CatalogFetcher(transport=catalog_transport({CATALOG_URL: []}))

        await fetcher.fetch(source)
        start = time.monotonic()
        await fetcher.fetch(source)
        elapsed = time.monotonic() - start

        assert elapsed >= 0.05
