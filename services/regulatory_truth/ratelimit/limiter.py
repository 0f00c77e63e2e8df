"""
Domain Rate Limiter
===================

Per-domain politeness delays plus a consecutive-error circuit breaker.

Each request to a domain waits a randomized delay drawn from
[min_delay_ms, max_delay_ms] since the previous request, so independent
workers never settle into a synchronized pattern against one host.
After `circuit_threshold` consecutive errors the circuit opens and
requests fail fast until the cool-down elapses or an operator resets it.

State is process-local and in memory. Construct one limiter per source
through `RateLimiterRegistry`.

Version: 0.1.0
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from services.regulatory_truth.alerting import (
    AlertEvent,
    AlertSeverity,
    AlertSink,
    AlertType,
)
from services.regulatory_truth.errors import CircuitOpenError
from shared.logging import get_logger


logger = get_logger(__name__)

# Below this a domain still counts as healthy in health snapshots
UNHEALTHY_ERROR_STREAK = 3


@dataclass(frozen=True)
class DomainRateLimitConfig:
    """Randomized delay band between requests to one domain."""

    min_delay_ms: int = 2000
    max_delay_ms: int = 5000

    def __post_init__(self) -> None:
        if self.min_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("Rate-limit delays must be non-negative")
        if self.min_delay_ms > self.max_delay_ms:
            raise ValueError(
                f"min_delay_ms ({self.min_delay_ms}) > max_delay_ms ({self.max_delay_ms})"
            )


@dataclass
class DomainStats:
    """Mutable per-domain request state."""

    last_request_at: float | None = None
    consecutive_errors: int = 0
    is_circuit_broken: bool = False
    circuit_broken_at: float | None = None
    total_requests: int = 0
    successful_requests: int = 0
    last_success_at: datetime | None = None
    last_error_message: str | None = None


class DomainStatus(BaseModel):
    """Circuit state of a single domain."""

    domain: str
    is_circuit_broken: bool
    consecutive_errors: int


class DomainHealth(BaseModel):
    """Health snapshot of a single domain."""

    is_healthy: bool
    success_rate: float
    consecutive_errors: int
    is_circuit_broken: bool
    last_success_at: datetime | None = None
    last_error: str | None = None


class RateLimiterHealth(BaseModel):
    """Health snapshot of every domain a limiter has seen."""

    domains: dict[str, DomainHealth] = Field(default_factory=dict)
    overall_healthy: bool = True


class DomainRateLimiter:
    """
    Per-domain delay enforcement and failure-streak tracking.

    Clock, sleep and random source are injectable for deterministic tests.
    """

    def __init__(
        self,
        config: DomainRateLimitConfig | None = None,
        circuit_threshold: int = 5,
        cooldown_seconds: float = 3600.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
        alert_sink: AlertSink | None = None,
    ) -> None:
        if circuit_threshold < 1:
            raise ValueError("circuit_threshold must be at least 1")
        self.config = config or DomainRateLimitConfig()
        self.circuit_threshold = circuit_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._alert_sink = alert_sink
        self._stats: dict[str, DomainStats] = {}

    def _get_stats(self, domain: str) -> DomainStats:
        if domain not in self._stats:
            self._stats[domain] = DomainStats()
        return self._stats[domain]

    def _target_delay_seconds(self) -> float:
        low = self.config.min_delay_ms / 1000
        high = self.config.max_delay_ms / 1000
        return self._rng.uniform(low, high)

    async def wait_for_slot(self, domain: str) -> None:
        """
        Wait until a request to `domain` is allowed.

        Raises:
            CircuitOpenError: circuit open and cool-down not yet elapsed
        """
        stats = self._get_stats(domain)

        if stats.is_circuit_broken:
            elapsed = self._clock() - (stats.circuit_broken_at or 0.0)
            if elapsed < self.cooldown_seconds:
                raise CircuitOpenError(domain, self.cooldown_seconds - elapsed)

            logger.info(
                "circuit_breaker_auto_closed",
                domain=domain,
                cooldown_seconds=self.cooldown_seconds,
            )
            stats.is_circuit_broken = False
            stats.circuit_broken_at = None
            stats.consecutive_errors = 0

        if stats.last_request_at is not None:
            target = self._target_delay_seconds()
            elapsed = self._clock() - stats.last_request_at
            if elapsed < target:
                await self._sleep(target - elapsed)

        stats.last_request_at = self._clock()

    def record_success(self, domain: str) -> None:
        stats = self._get_stats(domain)
        stats.consecutive_errors = 0
        stats.total_requests += 1
        stats.successful_requests += 1
        stats.last_success_at = datetime.now(UTC)

    def record_error(self, domain: str, error_message: str | None = None) -> None:
        stats = self._get_stats(domain)
        stats.consecutive_errors += 1
        stats.total_requests += 1
        stats.last_error_message = error_message

        if not stats.is_circuit_broken and stats.consecutive_errors >= self.circuit_threshold:
            stats.is_circuit_broken = True
            stats.circuit_broken_at = self._clock()
            logger.warning(
                "circuit_breaker_opened",
                domain=domain,
                consecutive_errors=stats.consecutive_errors,
                last_error=error_message,
            )

    async def reset_circuit_breaker(self, domain: str, actor: str, reason: str) -> DomainStatus:
        """
        Administrative reset of a domain's circuit.

        The reset is audited and raises an operational alert.
        """
        stats = self._stats.get(domain)
        previous = self.get_status(domain)
        if stats is not None:
            stats.is_circuit_broken = False
            stats.circuit_broken_at = None
            stats.consecutive_errors = 0

        logger.warning(
            "circuit_breaker_reset_audit",
            domain=domain,
            actor=actor,
            reason=reason,
            was_open=previous.is_circuit_broken,
            consecutive_errors_cleared=previous.consecutive_errors,
        )

        if self._alert_sink is not None:
            await self._alert_sink.send(
                AlertEvent(
                    type=AlertType.CIRCUIT_BREAKER_RESET,
                    severity=AlertSeverity.WARNING,
                    entity_id=domain,
                    message=f'Circuit breaker for "{domain}" manually reset by {actor}',
                    details={
                        "domain": domain,
                        "actor": actor,
                        "reason": reason,
                        "wasOpen": previous.is_circuit_broken,
                        "consecutiveErrors": previous.consecutive_errors,
                        "lastError": stats.last_error_message if stats else None,
                    },
                )
            )

        return previous

    def tracks(self, domain: str) -> bool:
        return domain in self._stats

    def get_status(self, domain: str) -> DomainStatus:
        """Circuit state of `domain`; an unseen domain reads as closed."""
        stats = self._stats.get(domain)
        if stats is None:
            return DomainStatus(domain=domain, is_circuit_broken=False, consecutive_errors=0)
        return DomainStatus(
            domain=domain,
            is_circuit_broken=stats.is_circuit_broken,
            consecutive_errors=stats.consecutive_errors,
        )

    def get_health_status(self) -> RateLimiterHealth:
        """Snapshot of all tracked domains."""
        domains: dict[str, DomainHealth] = {}
        overall_healthy = True

        for domain, stats in self._stats.items():
            success_rate = (
                stats.successful_requests / stats.total_requests if stats.total_requests else 1.0
            )
            is_healthy = (
                not stats.is_circuit_broken and stats.consecutive_errors < UNHEALTHY_ERROR_STREAK
            )
            overall_healthy = overall_healthy and is_healthy

            domains[domain] = DomainHealth(
                is_healthy=is_healthy,
                success_rate=round(success_rate, 2),
                consecutive_errors=stats.consecutive_errors,
                is_circuit_broken=stats.is_circuit_broken,
                last_success_at=stats.last_success_at,
                last_error=stats.last_error_message,
            )

        return RateLimiterHealth(domains=domains, overall_healthy=overall_healthy)
