"""
Tests for Streaming Sitemap Parsing
===================================

Tests for:
- URL canonicalization
- Streaming <loc> extraction
- Structural limits

Version: 0.1.0
"""

from collections.abc import AsyncIterator

import pytest

from services.regulatory_truth.discovery import (
    StreamingParserLimits,
    canonicalize_url,
    normalize_loc,
    parse_sitemap_index_locs,
    parse_urlset_locs,
)
from services.regulatory_truth.errors import SitemapParseError, StructuralLimitExceeded


NS = 'xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"'


def urlset(*locs: str) -> bytes:
    entries = "".join(f"<url><loc>{loc}</loc></url>" for loc in locs)
    return f'<?xml version="1.0" encoding="UTF-8"?><urlset {NS}>{entries}</urlset>'.encode()


async def chunked(data: bytes, size: int = 7) -> AsyncIterator[bytes]:
    for start in range(0, len(data), size):
        yield data[start : start + size]


async def collect(locs: AsyncIterator[str]) -> list[str]:
    return [loc async for loc in locs]


# ============================================================================
# Canonicalization Tests
# ============================================================================


class TestCanonicalizeUrl:
    """Tests for canonicalize_url."""

    def test_lowercases_scheme_and_host(self) -> None:
        assert canonicalize_url("HTTPS://Narodne-Novine.NN.hr/clanci") == (
            "https://narodne-novine.nn.hr/clanci"
        )

    def test_drops_default_port_and_fragment(self) -> None:
        assert canonicalize_url("https://nn.hr:443/a#top") == "https://nn.hr/a"
        assert canonicalize_url("http://nn.hr:8080/a") == "http://nn.hr:8080/a"

    def test_strips_tracking_and_sorts_query(self) -> None:
        url = "https://nn.hr/search?z=1&utm_source=x&a=2&fbclid=abc"
        assert canonicalize_url(url) == "https://nn.hr/search?a=2&z=1"

    def test_empty_path_becomes_root(self) -> None:
        assert canonicalize_url("https://nn.hr") == "https://nn.hr/"

    def test_rejects_non_http(self) -> None:
        with pytest.raises(ValueError):
            canonicalize_url("ftp://nn.hr/file")
        with pytest.raises(ValueError):
            canonicalize_url("/relative/path")

    def test_normalize_loc(self) -> None:
        """Test normalize_loc trims and returns None for unusable values."""
        assert normalize_loc("  https://nn.hr/a \n") == "https://nn.hr/a"
        assert normalize_loc("   ") is None
        assert normalize_loc("not a url") is None


# ============================================================================
# Streaming Extraction Tests
# ============================================================================


class TestStreamingExtraction:
    """Tests for incremental <loc> extraction."""

    @pytest.mark.asyncio
    async def test_urlset_in_small_chunks(self) -> None:
        """Test URLs are extracted regardless of chunk boundaries."""
        data = urlset("https://nn.hr/eli/sluzbeni/2024/1/1", "https://nn.hr/eli/sluzbeni/2024/1/2")

        urls = await collect(parse_urlset_locs(chunked(data, size=3)))

        assert urls == [
            "https://nn.hr/eli/sluzbeni/2024/1/1",
            "https://nn.hr/eli/sluzbeni/2024/1/2",
        ]

    @pytest.mark.asyncio
    async def test_sitemap_index(self) -> None:
        """Test child sitemap locations are read from an index."""
        data = (
            f"<sitemapindex {NS}>"
            "<sitemap><loc>https://nn.hr/sitemap_1_2024_1.xml</loc></sitemap>"
            "<sitemap><loc>https://nn.hr/sitemap_1_2024_2.xml</loc></sitemap>"
            "</sitemapindex>"
        ).encode()

        urls = await collect(parse_sitemap_index_locs(chunked(data)))

        assert urls == [
            "https://nn.hr/sitemap_1_2024_1.xml",
            "https://nn.hr/sitemap_1_2024_2.xml",
        ]

    @pytest.mark.asyncio
    async def test_cdata_and_whitespace(self) -> None:
        """Test CDATA content and surrounding whitespace are handled."""
        data = (
            f"<urlset {NS}><url><loc>\n  <![CDATA[https://nn.hr/a?b=1&a=2]]>  \n</loc></url></urlset>"
        ).encode()

        urls = await collect(parse_urlset_locs(chunked(data)))

        assert urls == ["https://nn.hr/a?a=2&b=1"]

    @pytest.mark.asyncio
    async def test_invalid_locs_skipped(self) -> None:
        """Test empty and non-http locations are dropped."""
        data = urlset("", "mailto:info@nn.hr", "https://nn.hr/ok")

        urls = await collect(parse_urlset_locs(chunked(data)))

        assert urls == ["https://nn.hr/ok"]

    @pytest.mark.asyncio
    async def test_nested_loc_rejected(self) -> None:
        """Test nested <loc> elements are a parse error."""
        data = f"<urlset {NS}><url><loc><loc>https://nn.hr/a</loc></loc></url></urlset>".encode()

        with pytest.raises(SitemapParseError):
            await collect(parse_urlset_locs(chunked(data)))

    @pytest.mark.asyncio
    async def test_malformed_xml(self) -> None:
        """Test truncated XML surfaces as a parse error."""
        data = f"<urlset {NS}><url><loc>https://nn.hr/a</loc></url>".encode()

        with pytest.raises(SitemapParseError):
            await collect(parse_urlset_locs(chunked(data)))


# ============================================================================
# Structural Limit Tests
# ============================================================================


class TestStructuralLimits:
    """Tests for fail-closed parser limits."""

    @pytest.mark.asyncio
    async def test_loc_length_limit(self) -> None:
        """Test an oversized <loc> aborts parsing."""
        limits = StreamingParserLimits(max_loc_length_chars=30)
        data = urlset("https://nn.hr/" + "a" * 40)

        with pytest.raises(StructuralLimitExceeded) as exc_info:
            await collect(parse_urlset_locs(chunked(data), limits))

        assert exc_info.value.limit_name == "max_loc_length_chars"

    @pytest.mark.asyncio
    async def test_loc_count_limit(self) -> None:
        """Test exceeding the per-file URL count aborts parsing."""
        limits = StreamingParserLimits(max_locs_per_file=2)
        data = urlset("https://nn.hr/1", "https://nn.hr/2", "https://nn.hr/3")

        with pytest.raises(StructuralLimitExceeded) as exc_info:
            await collect(parse_urlset_locs(chunked(data), limits))

        assert exc_info.value.limit_name == "max_locs_per_file"
        assert exc_info.value.value == 3

    @pytest.mark.asyncio
    async def test_invalid_locs_do_not_count(self) -> None:
        """Test rejected locations do not consume the URL count."""
        limits = StreamingParserLimits(max_locs_per_file=2)
        data = urlset("bogus", "https://nn.hr/1", "bogus", "https://nn.hr/2")

        urls = await collect(parse_urlset_locs(chunked(data), limits))

        assert urls == ["https://nn.hr/1", "https://nn.hr/2"]

    @pytest.mark.asyncio
    async def test_byte_limit(self) -> None:
        """Test exceeding the byte cap aborts parsing."""
        limits = StreamingParserLimits(max_bytes_per_file=50)
        data = urlset(*(f"https://nn.hr/{i}" for i in range(10)))

        with pytest.raises(StructuralLimitExceeded) as exc_info:
            await collect(parse_urlset_locs(chunked(data, size=16), limits))

        assert exc_info.value.limit_name == "max_bytes_per_file"
