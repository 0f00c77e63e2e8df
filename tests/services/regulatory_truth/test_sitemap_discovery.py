"""
Tests for Sitemap Discovery
===========================

Tests for:
- Early stop and checkpoint position
- Resume from a stored checkpoint
- Structural limit and failure ceiling aborts
- Shutdown between children
- Date filtering of child sitemaps
- Zero-URL alerting

Version: 0.1.0
"""

import re
from collections.abc import AsyncIterator
from datetime import date
from typing import Any

import httpx
import pytest

from services.regulatory_truth.alerting import AlertType, InMemoryAlertSink
from services.regulatory_truth.discovery import (
    DiscoveryCheckpoint,
    DiscoveryOutcome,
    DiscoveryProgress,
    HttpxChunkSource,
    InMemoryCheckpointStore,
    ShutdownSignal,
    SitemapDiscovery,
    SitemapDiscoveryOptions,
    extract_child_year,
    is_massive_sitemap_source,
)
from services.regulatory_truth.errors import (
    FetchError,
    StructuralLimitExceeded,
    TooManyChildFailures,
)
from services.regulatory_truth.ratelimit import DomainRateLimiter


NS = 'xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"'
INDEX_URL = "https://nn.hr/sitemap.xml"
CHILD_0 = "https://nn.hr/sitemap_1_2024_1.xml"
CHILD_1 = "https://nn.hr/sitemap_1_2024_2.xml"
CHILD_2 = "https://nn.hr/sitemap_1_2024_3.xml"


def sitemap_index(*children: str) -> bytes:
    entries = "".join(f"<sitemap><loc>{c}</loc></sitemap>" for c in children)
    return f"<sitemapindex {NS}>{entries}</sitemapindex>".encode()


def urlset(*locs: str) -> bytes:
    entries = "".join(f"<url><loc>{loc}</loc></url>" for loc in locs)
    return f"<urlset {NS}>{entries}</urlset>".encode()


class FakeChunkSource:
    """Serves canned documents in small chunks. Unknown URLs fail."""

    def __init__(self, documents: dict[str, bytes], chunk_size: int = 32) -> None:
        self.documents = documents
        self.chunk_size = chunk_size
        self.requested: list[str] = []

    async def stream(self, url: str) -> AsyncIterator[bytes]:
        self.requested.append(url)
        if url not in self.documents:
            raise FetchError(url, 404, "Not Found")
        data = self.documents[url]
        for start in range(0, len(data), self.chunk_size):
            yield data[start : start + self.chunk_size]


@pytest.fixture
def three_children() -> dict[str, bytes]:
    return {
        INDEX_URL: sitemap_index(CHILD_0, CHILD_1, CHILD_2),
        CHILD_0: urlset(
            "https://nn.hr/eli/sluzbeni/2024/1/1",
            "https://nn.hr/eli/sluzbeni/2024/1/2",
            "https://nn.hr/eli/sluzbeni/2024/1/3",
        ),
        CHILD_1: urlset("https://nn.hr/eli/sluzbeni/2024/2/1", "https://nn.hr/other/page"),
        CHILD_2: urlset("https://nn.hr/eli/sluzbeni/2024/3/1"),
    }


def options(**overrides: Any) -> SitemapDiscoveryOptions:
    values: dict[str, Any] = {
        "sitemap_url": INDEX_URL,
        "url_pattern": r"/eli/",
        "max_urls": 100,
    }
    values.update(overrides)
    return SitemapDiscoveryOptions(**values)


async def collect(discovery: SitemapDiscovery) -> list[str]:
    return [url async for url in discovery.urls()]


# ============================================================================
# Options Tests
# ============================================================================


class TestSitemapDiscoveryOptions:
    """Tests for SitemapDiscoveryOptions."""

    def test_patterns_compiled(self) -> None:
        opts = options(date_pattern=r"_(\d{4})_")

        assert isinstance(opts.url_pattern, re.Pattern)
        assert isinstance(opts.date_pattern, re.Pattern)

    def test_max_urls_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            options(max_urls=0)


class TestHelpers:
    """Tests for discovery helpers."""

    def test_extract_child_year(self) -> None:
        pattern = re.compile(r"_(\d{4})_")

        assert extract_child_year(CHILD_0, pattern) == 2024
        assert extract_child_year("https://nn.hr/sitemap.xml", pattern) is None

    def test_massive_sources(self) -> None:
        assert is_massive_sitemap_source("narodne-novine")
        assert not is_massive_sitemap_source("hzzo")


# ============================================================================
# Discovery Run Tests
# ============================================================================


class TestSitemapDiscovery:
    """Tests for SitemapDiscovery runs."""

    @pytest.mark.asyncio
    async def test_early_stop_inside_first_child(
        self, zero_delay_limiter: DomainRateLimiter, three_children: dict[str, bytes]
    ) -> None:
        """Test stopping mid-child leaves the checkpoint before that child."""
        source = FakeChunkSource(three_children)
        discovery = SitemapDiscovery(options(max_urls=2), zero_delay_limiter, source=source)

        urls = await collect(discovery)

        assert urls == [
            "https://nn.hr/eli/sluzbeni/2024/1/1",
            "https://nn.hr/eli/sluzbeni/2024/1/2",
        ]
        assert discovery.outcome == DiscoveryOutcome.EARLY_STOP
        assert discovery.checkpoint.last_completed_child_index == -1
        assert discovery.checkpoint.last_completed_child_url is None
        assert discovery.checkpoint.urls_emitted_so_far == 2
        assert source.requested == [INDEX_URL, CHILD_0]

    @pytest.mark.asyncio
    async def test_full_run_saves_checkpoint_per_child(
        self, zero_delay_limiter: DomainRateLimiter, three_children: dict[str, bytes]
    ) -> None:
        """Test a complete run checkpoints after every child."""
        store = InMemoryCheckpointStore()
        progress_updates: list[int] = []
        discovery = SitemapDiscovery(
            options(),
            zero_delay_limiter,
            source=FakeChunkSource(three_children),
            checkpoint_store=store,
            on_progress=lambda p: progress_updates.append(p.child_sitemaps_fetched),
        )

        urls = await collect(discovery)

        assert len(urls) == 5
        assert "https://nn.hr/other/page" not in urls
        assert discovery.outcome == DiscoveryOutcome.COMPLETED
        assert [c.last_completed_child_index for c in store.saved] == [0, 1, 2]
        assert store.saved[-1].urls_emitted_so_far == 5
        assert progress_updates == [1, 2, 3]
        assert discovery.progress.urls_rejected_by_pattern == 1

    @pytest.mark.asyncio
    async def test_resume_from_stored_checkpoint(
        self, zero_delay_limiter: DomainRateLimiter, three_children: dict[str, bytes]
    ) -> None:
        """Test a resumed run skips completed children."""
        store = InMemoryCheckpointStore(
            DiscoveryCheckpoint(
                last_completed_child_index=0,
                last_completed_child_url=CHILD_0,
                urls_emitted_so_far=3,
            )
        )
        source = FakeChunkSource(three_children)
        discovery = SitemapDiscovery(
            options(), zero_delay_limiter, source=source, checkpoint_store=store
        )

        urls = await collect(discovery)

        assert urls == [
            "https://nn.hr/eli/sluzbeni/2024/2/1",
            "https://nn.hr/eli/sluzbeni/2024/3/1",
        ]
        assert source.requested == [INDEX_URL, CHILD_1, CHILD_2]
        assert discovery.progress.child_sitemaps_skipped == 1
        assert discovery.checkpoint.last_completed_child_index == 2
        assert discovery.checkpoint.urls_emitted_so_far == 5

    @pytest.mark.asyncio
    async def test_early_stop_then_resume_rereads_child(
        self, zero_delay_limiter: DomainRateLimiter, three_children: dict[str, bytes]
    ) -> None:
        """Test the partially consumed child is re-read on resume."""
        first = SitemapDiscovery(
            options(max_urls=2), zero_delay_limiter, source=FakeChunkSource(three_children)
        )
        await collect(first)

        source = FakeChunkSource(three_children)
        resumed = SitemapDiscovery(
            options(max_urls=100, checkpoint=first.checkpoint),
            zero_delay_limiter,
            source=source,
        )
        urls = await collect(resumed)

        assert source.requested[1] == CHILD_0
        assert "https://nn.hr/eli/sluzbeni/2024/1/1" in urls
        assert resumed.checkpoint.urls_emitted_so_far == 2 + len(urls)

    @pytest.mark.asyncio
    async def test_structural_limit_aborts_run(
        self, zero_delay_limiter: DomainRateLimiter, three_children: dict[str, bytes]
    ) -> None:
        """Test a structural limit is raised on first occurrence."""
        three_children[CHILD_1] = urlset("https://nn.hr/eli/" + "x" * 3000)
        source = FakeChunkSource(three_children)
        discovery = SitemapDiscovery(options(), zero_delay_limiter, source=source)

        with pytest.raises(StructuralLimitExceeded):
            await collect(discovery)

        assert CHILD_2 not in source.requested
        assert discovery.checkpoint.last_completed_child_index == 0

    @pytest.mark.asyncio
    async def test_child_failure_is_tolerated(
        self, zero_delay_limiter: DomainRateLimiter, three_children: dict[str, bytes]
    ) -> None:
        """Test a failing child is counted and the run continues."""
        del three_children[CHILD_1]
        discovery = SitemapDiscovery(
            options(), zero_delay_limiter, source=FakeChunkSource(three_children)
        )

        urls = await collect(discovery)

        assert len(urls) == 4
        assert discovery.outcome == DiscoveryOutcome.COMPLETED
        assert discovery.progress.child_sitemaps_failed == 1
        assert discovery.checkpoint.last_completed_child_index == 2

    @pytest.mark.asyncio
    async def test_failure_ceiling_aborts_run(
        self, zero_delay_limiter: DomainRateLimiter, three_children: dict[str, bytes]
    ) -> None:
        """Test exceeding the failure ceiling is fatal."""
        del three_children[CHILD_1]
        del three_children[CHILD_2]
        discovery = SitemapDiscovery(
            options(max_child_failures=1),
            zero_delay_limiter,
            source=FakeChunkSource(three_children),
        )

        with pytest.raises(TooManyChildFailures) as exc_info:
            await collect(discovery)

        assert exc_info.value.failed == 2
        assert exc_info.value.ceiling == 1

    @pytest.mark.asyncio
    async def test_malformed_child_is_a_child_failure(
        self, zero_delay_limiter: DomainRateLimiter, three_children: dict[str, bytes]
    ) -> None:
        """Test malformed XML in one child does not abort the run."""
        three_children[CHILD_1] = b"<urlset><url><loc>https://nn.hr/eli/broken"
        discovery = SitemapDiscovery(
            options(), zero_delay_limiter, source=FakeChunkSource(three_children)
        )

        await collect(discovery)

        assert discovery.progress.child_sitemaps_failed == 1
        assert discovery.outcome == DiscoveryOutcome.COMPLETED

    @pytest.mark.asyncio
    async def test_shutdown_between_children(
        self, zero_delay_limiter: DomainRateLimiter, three_children: dict[str, bytes]
    ) -> None:
        """Test a shutdown request stops the run after the current child."""
        signal = ShutdownSignal()

        def on_progress(progress: DiscoveryProgress) -> None:
            signal.request("SIGTERM")

        source = FakeChunkSource(three_children)
        discovery = SitemapDiscovery(
            options(),
            zero_delay_limiter,
            source=source,
            shutdown_signal=signal,
            on_progress=on_progress,
        )

        urls = await collect(discovery)

        assert len(urls) == 3
        assert discovery.outcome == DiscoveryOutcome.SHUTDOWN
        assert discovery.checkpoint.last_completed_child_index == 0
        assert source.requested == [INDEX_URL, CHILD_0]

    @pytest.mark.asyncio
    async def test_date_filter_skips_children(self, zero_delay_limiter: DomainRateLimiter) -> None:
        """Test children outside the year range and undated children are skipped."""
        old = "https://nn.hr/sitemap_1_2023_1.xml"
        undated = "https://nn.hr/sitemap_extra.xml"
        documents = {
            INDEX_URL: sitemap_index(old, CHILD_0, undated),
            old: urlset("https://nn.hr/eli/sluzbeni/2023/1/1"),
            CHILD_0: urlset("https://nn.hr/eli/sluzbeni/2024/1/1"),
            undated: urlset("https://nn.hr/eli/extra"),
        }
        source = FakeChunkSource(documents)
        discovery = SitemapDiscovery(
            options(date_pattern=r"_(\d{4})_", date_from=date(2024, 1, 1)),
            zero_delay_limiter,
            source=source,
        )

        urls = await collect(discovery)

        assert urls == ["https://nn.hr/eli/sluzbeni/2024/1/1"]
        assert source.requested == [INDEX_URL, CHILD_0]
        assert discovery.progress.child_sitemaps_skipped == 2

    @pytest.mark.asyncio
    async def test_zero_urls_raises_alert(
        self,
        zero_delay_limiter: DomainRateLimiter,
        three_children: dict[str, bytes],
        alert_sink: InMemoryAlertSink,
    ) -> None:
        """Test a completed run with no URLs raises an alert."""
        discovery = SitemapDiscovery(
            options(url_pattern=r"/nothing-matches/"),
            zero_delay_limiter,
            source=FakeChunkSource(three_children),
            alert_sink=alert_sink,
            source_slug="narodne-novine",
        )

        urls = await collect(discovery)

        assert urls == []
        alerts = alert_sink.of_type(AlertType.DISCOVERY_ZERO_URLS)
        assert len(alerts) == 1
        assert alerts[0].entity_id == "narodne-novine"

    @pytest.mark.asyncio
    async def test_urls_iterated_once(
        self, zero_delay_limiter: DomainRateLimiter, three_children: dict[str, bytes]
    ) -> None:
        """Test a run cannot be iterated twice."""
        discovery = SitemapDiscovery(
            options(), zero_delay_limiter, source=FakeChunkSource(three_children)
        )
        await collect(discovery)

        with pytest.raises(RuntimeError):
            await collect(discovery)


# ============================================================================
# HTTP Chunk Source Tests
# ============================================================================


class TestHttpxChunkSource:
    """Tests for HttpxChunkSource."""

    @pytest.mark.asyncio
    async def test_streams_body(self) -> None:
        body = urlset("https://nn.hr/eli/1")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = HttpxChunkSource(client)
            data = b"".join([chunk async for chunk in source.stream(CHILD_0)])

        assert data == body

    @pytest.mark.asyncio
    async def test_error_status_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = HttpxChunkSource(client)
            with pytest.raises(FetchError):
                async for _ in source.stream(CHILD_0):
                    pass
