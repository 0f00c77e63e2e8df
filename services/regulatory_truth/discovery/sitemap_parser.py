"""
Streaming Sitemap Parser
========================

Incremental `<loc>` extraction for `sitemapindex` and `urlset` documents.

Chunks are fed to an lxml pull parser as they arrive and URLs are yielded
as soon as their closing tag is seen. No document tree is kept: every
finished `<url>`/`<sitemap>` entry is cleared and detached. Structural
limits are fail-closed and raise instead of truncating.

Version: 0.1.0
"""

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Literal

from lxml import etree

from services.regulatory_truth.discovery.url_canonicalizer import normalize_loc
from services.regulatory_truth.errors import SitemapParseError, StructuralLimitExceeded
from shared.config.settings import DiscoverySettings
from shared.logging import get_logger


logger = get_logger(__name__)

SitemapKind = Literal["sitemapindex", "urlset"]

# Entry elements whose subtrees can be released once closed
_ENTRY_TAGS = frozenset({"url", "sitemap"})


@dataclass(frozen=True)
class StreamingParserLimits:
    """Per-file safety caps."""

    max_loc_length_chars: int = 2048
    max_locs_per_file: int = 100_000
    max_bytes_per_file: int = 50 * 1024 * 1024

    @classmethod
    def from_settings(cls, settings: DiscoverySettings) -> "StreamingParserLimits":
        return cls(
            max_loc_length_chars=settings.max_loc_length_chars,
            max_locs_per_file=settings.max_locs_per_file,
            max_bytes_per_file=settings.max_bytes_per_file,
        )


def _local_name(element: etree._Element) -> str | None:
    if not isinstance(element.tag, str):
        return None
    return etree.QName(element).localname.lower()


def _new_pull_parser() -> etree.XMLPullParser:
    return etree.XMLPullParser(
        events=("start", "end"),
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        huge_tree=False,
        remove_comments=True,
        remove_pis=True,
    )


class _LocExtractor:
    """Turns pull-parser events into canonical URLs, enforcing limits."""

    def __init__(self, kind: SitemapKind, limits: StreamingParserLimits) -> None:
        self.kind = kind
        self.limits = limits
        self.inside_loc = False
        self.locs_emitted = 0

    def consume(self, parser: etree.XMLPullParser) -> list[str]:
        urls: list[str] = []
        for event, element in parser.read_events():
            name = _local_name(element)
            if name is None:
                continue

            if event == "start":
                if name == "loc":
                    if self.inside_loc:
                        raise SitemapParseError("Malformed XML: nested <loc> tags", self.kind)
                    self.inside_loc = True
                continue

            if name == "loc":
                self.inside_loc = False
                url = self._accept("".join(element.itertext()))
                if url is not None:
                    urls.append(url)
            elif name in _ENTRY_TAGS:
                element.clear()
                parent = element.getparent()
                if parent is not None:
                    while element.getprevious() is not None:
                        del parent[0]
        return urls

    def _accept(self, text: str) -> str | None:
        if len(text) > self.limits.max_loc_length_chars:
            raise StructuralLimitExceeded(
                "max_loc_length_chars",
                len(text),
                self.limits.max_loc_length_chars,
                self.kind,
            )

        url = normalize_loc(text)
        if url is None:
            logger.debug("sitemap_loc_rejected", kind=self.kind, loc=text[:200])
            return None

        # Only valid URLs count toward the per-file limit
        self.locs_emitted += 1
        if self.locs_emitted > self.limits.max_locs_per_file:
            raise StructuralLimitExceeded(
                "max_locs_per_file",
                self.locs_emitted,
                self.limits.max_locs_per_file,
                self.kind,
            )
        return url


async def _stream_locs(
    chunks: AsyncIterable[bytes],
    kind: SitemapKind,
    limits: StreamingParserLimits | None,
) -> AsyncIterator[str]:
    limits = limits or StreamingParserLimits()
    parser = _new_pull_parser()
    extractor = _LocExtractor(kind, limits)
    bytes_read = 0

    async for chunk in chunks:
        bytes_read += len(chunk)
        if bytes_read > limits.max_bytes_per_file:
            raise StructuralLimitExceeded(
                "max_bytes_per_file", bytes_read, limits.max_bytes_per_file, kind
            )

        try:
            parser.feed(chunk)
        except etree.XMLSyntaxError as e:
            raise SitemapParseError(f"XML parse error: {e}", kind) from e

        for url in extractor.consume(parser):
            yield url

    try:
        parser.close()
    except etree.XMLSyntaxError as e:
        raise SitemapParseError(f"XML parse error: {e}", kind) from e

    for url in extractor.consume(parser):
        yield url


def parse_sitemap_index_locs(
    chunks: AsyncIterable[bytes],
    limits: StreamingParserLimits | None = None,
) -> AsyncIterator[str]:
    """
    Yield child sitemap URLs from a sitemap index as they are parsed.

    Raises:
        StructuralLimitExceeded: a per-file limit was hit
        SitemapParseError: malformed XML or nested <loc>
    """
    return _stream_locs(chunks, "sitemapindex", limits)


def parse_urlset_locs(
    chunks: AsyncIterable[bytes],
    limits: StreamingParserLimits | None = None,
) -> AsyncIterator[str]:
    """
    Yield content URLs from a urlset sitemap as they are parsed.

    Raises:
        StructuralLimitExceeded: a per-file limit was hit
        SitemapParseError: malformed XML or nested <loc>
    """
    return _stream_locs(chunks, "urlset", limits)
