"""
Sitemap Discovery
=================

Streaming, resumable discovery of content URLs from sitemap indexes.
"""

from services.regulatory_truth.discovery.sitemap_discovery import (
    MAX_CHILD_FAILURES,
    ChunkSource,
    CheckpointStore,
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
from services.regulatory_truth.discovery.sitemap_parser import (
    StreamingParserLimits,
    parse_sitemap_index_locs,
    parse_urlset_locs,
)
from services.regulatory_truth.discovery.url_canonicalizer import canonicalize_url, normalize_loc

__all__ = [
    "MAX_CHILD_FAILURES",
    "ChunkSource",
    "CheckpointStore",
    "DiscoveryCheckpoint",
    "DiscoveryOutcome",
    "DiscoveryProgress",
    "HttpxChunkSource",
    "InMemoryCheckpointStore",
    "ShutdownSignal",
    "SitemapDiscovery",
    "SitemapDiscoveryOptions",
    "StreamingParserLimits",
    "canonicalize_url",
    "extract_child_year",
    "is_massive_sitemap_source",
    "normalize_loc",
    "parse_sitemap_index_locs",
    "parse_urlset_locs",
]
