"""
Regulatory Truth Service
========================

Turns raw government/legal web content into versioned, citable legal facts
retrievable by similarity search.

Components:
- ratelimit: per-domain politeness delays and circuit breaking
- discovery: streaming, resumable sitemap-index discovery
- parser: provision-tree parsing with offset invariants
- hashing: deterministic input/evidence hashes for idempotent retries
- search: pgvector semantic search with temporal rule filtering
- watchdog: endpoint health and alerting
- pipeline: tagged per-stage job payloads

Port: 8010
"""

__version__ = "0.1.0"
