"""
Regulatory Truth Routes
=======================

API route handlers for search, parsing and the watchdog.
"""

from services.regulatory_truth.routes import parse, search, watchdog

__all__ = ["parse", "search", "watchdog"]
