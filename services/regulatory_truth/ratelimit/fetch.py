"""
Rate-Limited Fetch
==================

HTTP GET through a `DomainRateLimiter` with retry on transient failures.

Every attempt waits for the domain's slot first, so retries also honour
the politeness delay and fail fast once the circuit opens.

Version: 0.1.0
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlsplit

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from services.regulatory_truth.errors import FetchError
from services.regulatory_truth.ratelimit.limiter import DomainRateLimiter
from shared.logging import get_logger


logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9",
    "Accept-Language": "hr,en;q=0.9",
}


class RetryableStatusError(FetchError):
    """Response status worth another attempt."""


def is_retryable_error(error: BaseException | None = None, status_code: int | None = None) -> bool:
    """True for retryable status codes and network-level failures."""
    if status_code is not None and status_code in RETRYABLE_STATUS_CODES:
        return True
    if isinstance(error, RetryableStatusError):
        return True
    return isinstance(error, httpx.TransportError)


async def fetch_with_rate_limit(
    client: httpx.AsyncClient,
    limiter: DomainRateLimiter,
    url: str,
    *,
    max_retries: int = 3,
    base_delay_seconds: float = 1.0,
    max_delay_seconds: float = 30.0,
    headers: dict[str, str] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **kwargs: Any,
) -> httpx.Response:
    """
    GET `url`, retrying retryable statuses and transport errors.

    Backoff is exponential with full jitter, capped at `max_delay_seconds`.

    Raises:
        CircuitOpenError: the domain's circuit is open (never retried)
        FetchError: non-success response, or retries exhausted
        httpx.TransportError: network failure after the last attempt
    """
    domain = urlsplit(url).hostname or ""
    request_headers = {**DEFAULT_HEADERS, **(headers or {})}

    retrying = AsyncRetrying(
        retry=retry_if_exception(is_retryable_error),
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_random_exponential(multiplier=base_delay_seconds, max=max_delay_seconds),
        sleep=sleep,
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "fetch_retry",
            domain=domain,
            url=url,
            attempt=retry_state.attempt_number,
            error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
    )

    async for attempt in retrying:
        with attempt:
            await limiter.wait_for_slot(domain)
            try:
                response = await client.get(url, headers=request_headers, **kwargs)
            except httpx.TransportError as e:
                limiter.record_error(domain, str(e) or type(e).__name__)
                raise

            if response.is_success:
                limiter.record_success(domain)
                logger.debug("fetch_succeeded", domain=domain, url=url, status=response.status_code)
                return response

            reason = response.reason_phrase
            limiter.record_error(domain, f"HTTP {response.status_code}: {reason}")
            if response.status_code in RETRYABLE_STATUS_CODES:
                raise RetryableStatusError(url, response.status_code, reason)
            raise FetchError(url, response.status_code, reason)

    # AsyncRetrying with reraise=True never falls through
    raise FetchError(url, 0, "retries exhausted")
