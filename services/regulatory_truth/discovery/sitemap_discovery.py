"""
Streaming Sitemap Discovery
===========================

Resumable discovery of content URLs from a sitemap index.

The root index is stream-parsed and each child sitemap is fetched in
order, one request in flight, through the source's `DomainRateLimiter`.
Children are skipped by checkpoint position and by an optional year
extracted from the child URL. Matching URLs are yielded as soon as they
are parsed; the run stops mid-child once `max_urls` is reached.

Checkpoints are written only after a child has been processed in full,
so a resumed run re-reads any partially consumed child from its start.
Downstream consumers must therefore tolerate duplicates at the resume
boundary.

Usage:
    discovery = SitemapDiscovery(options, limiter, checkpoint_store=store)
    async for url in discovery.urls():
        await enqueue(url)
    print(discovery.outcome, discovery.checkpoint)

Version: 0.1.0
"""

import re
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Protocol, runtime_checkable
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel

from services.regulatory_truth.alerting import AlertEvent, AlertSeverity, AlertSink, AlertType
from services.regulatory_truth.discovery.sitemap_parser import (
    StreamingParserLimits,
    parse_sitemap_index_locs,
    parse_urlset_locs,
)
from services.regulatory_truth.errors import (
    FetchError,
    StructuralLimitExceeded,
    TooManyChildFailures,
)
from services.regulatory_truth.ratelimit.limiter import DomainRateLimiter
from shared.logging import get_logger


logger = get_logger(__name__)

MAX_CHILD_FAILURES = 50

# Sources whose sitemap index has thousands of children
MASSIVE_SITEMAP_SOURCES = frozenset({"narodne-novine"})


class DiscoveryCheckpoint(BaseModel):
    """Durable resume marker. Written only after a child completes."""

    last_completed_child_index: int = -1
    last_completed_child_url: str | None = None
    urls_emitted_so_far: int = 0


class DiscoveryOutcome(str, Enum):
    """How a discovery run ended."""

    COMPLETED = "completed"
    EARLY_STOP = "early_stop"
    SHUTDOWN = "shutdown"


@dataclass
class DiscoveryProgress:
    """Counters for a single run."""

    child_sitemaps_scanned: int = 0
    child_sitemaps_skipped: int = 0
    child_sitemaps_fetched: int = 0
    child_sitemaps_failed: int = 0
    urls_emitted: int = 0
    urls_rejected_by_pattern: int = 0
    current_child_sitemap: str | None = None


@dataclass
class SitemapDiscoveryOptions:
    """Inputs for one discovery run."""

    sitemap_url: str
    url_pattern: re.Pattern[str]
    max_urls: int
    # Year must be capture group 1
    date_pattern: re.Pattern[str] | None = None
    date_from: date | None = None
    date_to: date | None = None
    include_undated_children: bool = False
    max_child_failures: int = MAX_CHILD_FAILURES
    limits: StreamingParserLimits = field(default_factory=StreamingParserLimits)
    checkpoint: DiscoveryCheckpoint | None = None

    def __post_init__(self) -> None:
        if self.max_urls < 1:
            raise ValueError("max_urls must be at least 1")
        if isinstance(self.url_pattern, str):
            self.url_pattern = re.compile(self.url_pattern)
        if isinstance(self.date_pattern, str):
            self.date_pattern = re.compile(self.date_pattern)


@runtime_checkable
class ChunkSource(Protocol):
    """Streams a URL's body as byte chunks."""

    def stream(self, url: str) -> AsyncIterator[bytes]: ...


@runtime_checkable
class CheckpointStore(Protocol):
    """Durable storage for one source's discovery checkpoint."""

    async def save(self, checkpoint: DiscoveryCheckpoint) -> None: ...

    async def load(self) -> DiscoveryCheckpoint | None: ...


class InMemoryCheckpointStore:
    """Checkpoint store that keeps every saved checkpoint in memory."""

    def __init__(self, initial: DiscoveryCheckpoint | None = None) -> None:
        self.saved: list[DiscoveryCheckpoint] = [initial] if initial else []

    async def save(self, checkpoint: DiscoveryCheckpoint) -> None:
        self.saved.append(checkpoint.model_copy())

    async def load(self) -> DiscoveryCheckpoint | None:
        return self.saved[-1].model_copy() if self.saved else None


class ShutdownSignal:
    """Externally set stop flag, polled only between child sitemaps."""

    def __init__(self) -> None:
        self._requested = False
        self.reason: str | None = None

    def request(self, reason: str | None = None) -> None:
        self._requested = True
        self.reason = reason

    @property
    def should_shutdown(self) -> bool:
        return self._requested


class HttpxChunkSource:
    """`ChunkSource` over an httpx client with a caller-supplied timeout."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
        user_agent: str = "RegulatoryTruth-Discovery/0.1",
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
        )
        self._headers = {
            "User-Agent": user_agent,
            "Accept": "application/xml, text/xml, */*",
        }

    async def stream(self, url: str) -> AsyncIterator[bytes]:
        async with self._client.stream("GET", url, headers=self._headers) as response:
            if not response.is_success:
                raise FetchError(url, response.status_code, response.reason_phrase)
            async for chunk in response.aiter_bytes():
                yield chunk

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def extract_child_year(child_url: str, date_pattern: re.Pattern[str]) -> int | None:
    """Year from capture group 1 of `date_pattern`, if it matches."""
    match = date_pattern.search(child_url)
    if match is None or match.lastindex is None:
        return None
    try:
        return int(match.group(1))
    except (TypeError, ValueError):
        return None


def is_massive_sitemap_source(slug: str) -> bool:
    """True for sources whose index is too large for non-streaming discovery."""
    return slug in MASSIVE_SITEMAP_SOURCES


class SitemapDiscovery:
    """
    One discovery run over a sitemap index.

    `urls()` may be iterated once. Afterwards `checkpoint`, `outcome` and
    `progress` describe where the run ended.
    """

    def __init__(
        self,
        options: SitemapDiscoveryOptions,
        limiter: DomainRateLimiter,
        *,
        source: ChunkSource | None = None,
        checkpoint_store: CheckpointStore | None = None,
        shutdown_signal: ShutdownSignal | None = None,
        on_progress: Callable[[DiscoveryProgress], None] | None = None,
        alert_sink: AlertSink | None = None,
        source_slug: str | None = None,
    ) -> None:
        self.options = options
        self.limiter = limiter
        self.source = source or HttpxChunkSource()
        self.checkpoint_store = checkpoint_store
        self.shutdown_signal = shutdown_signal or ShutdownSignal()
        self.on_progress = on_progress
        self.alert_sink = alert_sink
        self.source_slug = source_slug or urlsplit(options.sitemap_url).hostname or ""

        self.progress = DiscoveryProgress()
        self.checkpoint = options.checkpoint or DiscoveryCheckpoint()
        self.outcome: DiscoveryOutcome | None = None
        self._started = False

    def _skip_by_date(self, child_url: str) -> bool:
        pattern = self.options.date_pattern
        if pattern is None:
            return False

        year = extract_child_year(child_url, pattern)
        if year is None:
            return not self.options.include_undated_children

        from_year = self.options.date_from.year if self.options.date_from else 0
        to_year = self.options.date_to.year if self.options.date_to else 9999
        return not from_year <= year <= to_year

    async def _fetch_locs(
        self,
        url: str,
        parse: Callable[[AsyncIterator[bytes], StreamingParserLimits], AsyncIterator[str]],
    ) -> AsyncIterator[str]:
        domain = urlsplit(url).hostname or ""
        await self.limiter.wait_for_slot(domain)
        async with aclosing(self.source.stream(url)) as chunks:
            async with aclosing(parse(chunks, self.options.limits)) as locs:
                async for loc in locs:
                    yield loc

    async def urls(self) -> AsyncIterator[str]:
        """
        Yield matching content URLs in sitemap order.

        Raises:
            StructuralLimitExceeded: a parser safety cap was hit (first occurrence)
            TooManyChildFailures: child failures exceeded `max_child_failures`
        """
        if self._started:
            raise RuntimeError("SitemapDiscovery.urls() can only be iterated once")
        self._started = True

        if self.options.checkpoint is None and self.checkpoint_store is not None:
            stored = await self.checkpoint_store.load()
            if stored is not None:
                self.checkpoint = stored

        resume_after = self.checkpoint.last_completed_child_index
        total_emitted = self.checkpoint.urls_emitted_so_far
        previous_child_url = self.checkpoint.last_completed_child_url
        progress = self.progress

        logger.info(
            "sitemap_discovery_started",
            source=self.source_slug,
            sitemap_url=self.options.sitemap_url,
            resume_after_index=resume_after,
            urls_emitted_so_far=total_emitted,
            max_urls=self.options.max_urls,
        )

        child_index = -1
        async with aclosing(
            self._fetch_locs(self.options.sitemap_url, parse_sitemap_index_locs)
        ) as children:
            async for child_url in children:
                child_index += 1
                progress.child_sitemaps_scanned += 1

                if child_index <= resume_after or self._skip_by_date(child_url):
                    progress.child_sitemaps_skipped += 1
                    previous_child_url = child_url
                    continue

                progress.current_child_sitemap = child_url
                domain = urlsplit(child_url).hostname or ""

                try:
                    async with aclosing(self._fetch_locs(child_url, parse_urlset_locs)) as locs:
                        async for url in locs:
                            if not self.options.url_pattern.search(url):
                                progress.urls_rejected_by_pattern += 1
                                continue

                            yield url
                            progress.urls_emitted += 1
                            total_emitted += 1

                            if total_emitted >= self.options.max_urls:
                                # The current child is unfinished; point at the previous one
                                self.checkpoint = DiscoveryCheckpoint(
                                    last_completed_child_index=child_index - 1,
                                    last_completed_child_url=previous_child_url,
                                    urls_emitted_so_far=total_emitted,
                                )
                                self.outcome = DiscoveryOutcome.EARLY_STOP
                                logger.info(
                                    "sitemap_discovery_early_stop",
                                    source=self.source_slug,
                                    child_index=child_index,
                                    urls_emitted_so_far=total_emitted,
                                )
                                return

                except StructuralLimitExceeded:
                    logger.error(
                        "sitemap_structural_limit_exceeded",
                        source=self.source_slug,
                        child_sitemap=child_url,
                    )
                    raise
                except Exception as e:
                    progress.child_sitemaps_failed += 1
                    self.limiter.record_error(domain, str(e))
                    logger.warning(
                        "child_sitemap_failed",
                        source=self.source_slug,
                        child_sitemap=child_url,
                        child_index=child_index,
                        failures=progress.child_sitemaps_failed,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    if progress.child_sitemaps_failed > self.options.max_child_failures:
                        raise TooManyChildFailures(
                            progress.child_sitemaps_failed, self.options.max_child_failures
                        ) from e
                else:
                    progress.child_sitemaps_fetched += 1
                    self.limiter.record_success(domain)
                    self.checkpoint = DiscoveryCheckpoint(
                        last_completed_child_index=child_index,
                        last_completed_child_url=child_url,
                        urls_emitted_so_far=total_emitted,
                    )
                    if self.checkpoint_store is not None:
                        await self.checkpoint_store.save(self.checkpoint)
                    if self.on_progress is not None:
                        self.on_progress(progress)

                previous_child_url = child_url

                if self.shutdown_signal.should_shutdown:
                    self.outcome = DiscoveryOutcome.SHUTDOWN
                    logger.info(
                        "sitemap_discovery_shutdown",
                        source=self.source_slug,
                        reason=self.shutdown_signal.reason,
                        checkpoint=self.checkpoint.model_dump(),
                    )
                    return

        self.outcome = DiscoveryOutcome.COMPLETED
        progress.current_child_sitemap = None
        logger.info(
            "sitemap_discovery_completed",
            source=self.source_slug,
            scanned=progress.child_sitemaps_scanned,
            skipped=progress.child_sitemaps_skipped,
            fetched=progress.child_sitemaps_fetched,
            failed=progress.child_sitemaps_failed,
            urls_emitted=progress.urls_emitted,
        )

        if total_emitted == 0:
            await self._alert_zero_urls()

    async def _alert_zero_urls(self) -> None:
        logger.warning(
            "sitemap_discovery_zero_urls",
            source=self.source_slug,
            sitemap_url=self.options.sitemap_url,
            skipped=self.progress.child_sitemaps_skipped,
        )
        if self.alert_sink is None:
            return
        await self.alert_sink.send(
            AlertEvent(
                type=AlertType.DISCOVERY_ZERO_URLS,
                severity=AlertSeverity.WARNING,
                entity_id=self.source_slug,
                message=f"Sitemap discovery for {self.source_slug} found no URLs",
                details={
                    "sitemapUrl": self.options.sitemap_url,
                    "childSitemapsScanned": self.progress.child_sitemaps_scanned,
                    "childSitemapsSkipped": self.progress.child_sitemaps_skipped,
                    "childSitemapsFailed": self.progress.child_sitemaps_failed,
                    "urlsRejectedByPattern": self.progress.urls_rejected_by_pattern,
                },
            )
        )
