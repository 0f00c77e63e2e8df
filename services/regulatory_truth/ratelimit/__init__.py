"""
Rate Limiting
=============

Per-domain politeness delays, circuit breaking and rate-limited fetch.
"""

from services.regulatory_truth.ratelimit.fetch import (
    RETRYABLE_STATUS_CODES,
    RetryableStatusError,
    fetch_with_rate_limit,
    is_retryable_error,
)
from services.regulatory_truth.ratelimit.limiter import (
    DomainHealth,
    DomainRateLimitConfig,
    DomainRateLimiter,
    DomainStatus,
    RateLimiterHealth,
)
from services.regulatory_truth.ratelimit.registry import RateLimiterRegistry

__all__ = [
    "DomainHealth",
    "DomainRateLimitConfig",
    "DomainRateLimiter",
    "DomainStatus",
    "RateLimiterHealth",
    "RateLimiterRegistry",
    "RETRYABLE_STATUS_CODES",
    "RetryableStatusError",
    "fetch_with_rate_limit",
    "is_retryable_error",
]
