"""
Regulatory Truth Services
=========================

Services:
- regulatory_truth: sitemap discovery, provision parsing, semantic search
  and the discovery watchdog
"""

__all__ = [
    "regulatory_truth",
]
