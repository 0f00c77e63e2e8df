"""
Rate Limiter Registry
=====================

Explicit registry of per-source rate limiters.

Built once at process start and passed to whatever needs a limiter.
Creation and shutdown are explicit calls; there is no implicit
first-access construction.

Version: 0.1.0
"""

from services.regulatory_truth.alerting import AlertSink
from services.regulatory_truth.ratelimit.limiter import (
    DomainRateLimitConfig,
    DomainRateLimiter,
    RateLimiterHealth,
)
from shared.config.settings import Settings
from shared.logging import get_logger


logger = get_logger(__name__)


class RateLimiterRegistry:
    """Per-source `DomainRateLimiter` instances keyed by source slug."""

    def __init__(
        self,
        default_config: DomainRateLimitConfig | None = None,
        circuit_threshold: int = 5,
        cooldown_seconds: float = 3600.0,
        alert_sink: AlertSink | None = None,
    ) -> None:
        self.default_config = default_config or DomainRateLimitConfig()
        self.circuit_threshold = circuit_threshold
        self.cooldown_seconds = cooldown_seconds
        self._alert_sink = alert_sink
        self._limiters: dict[str, DomainRateLimiter] = {}
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        alert_sink: AlertSink | None = None,
    ) -> "RateLimiterRegistry":
        return cls(
            default_config=DomainRateLimitConfig(
                min_delay_ms=settings.discovery.min_delay_ms,
                max_delay_ms=settings.discovery.max_delay_ms,
            ),
            circuit_threshold=settings.circuit_breaker.threshold,
            cooldown_seconds=settings.circuit_breaker.cooldown_seconds,
            alert_sink=alert_sink,
        )

    def create(
        self,
        source: str,
        config: DomainRateLimitConfig | None = None,
    ) -> DomainRateLimiter:
        """
        Create the limiter for `source`.

        Raises:
            RuntimeError: registry already shut down
            ValueError: a limiter for `source` already exists
        """
        if self._closed:
            raise RuntimeError("Rate limiter registry has been shut down")
        if source in self._limiters:
            raise ValueError(f"Rate limiter for source '{source}' already exists")

        limiter = DomainRateLimiter(
            config or self.default_config,
            circuit_threshold=self.circuit_threshold,
            cooldown_seconds=self.cooldown_seconds,
            alert_sink=self._alert_sink,
        )
        self._limiters[source] = limiter
        logger.info("rate_limiter_created", source=source)
        return limiter

    def get(self, source: str) -> DomainRateLimiter:
        """
        Raises:
            KeyError: no limiter was created for `source`
        """
        try:
            return self._limiters[source]
        except KeyError:
            raise KeyError(f"No rate limiter registered for source '{source}'") from None

    def sources(self) -> list[str]:
        return sorted(self._limiters)

    def __iter__(self):
        return iter(self._limiters.values())

    def health_snapshot(self) -> dict[str, RateLimiterHealth]:
        """Live health of every registered limiter, keyed by source."""
        return {source: limiter.get_health_status() for source, limiter in self._limiters.items()}

    def find_domain(self, domain: str) -> DomainRateLimiter | None:
        """Return the limiter that has tracked `domain`, if any."""
        for limiter in self._limiters.values():
            if limiter.tracks(domain):
                return limiter
        return None

    def shutdown(self) -> None:
        """Drop all limiters. Further `create` calls fail."""
        logger.info("rate_limiter_registry_shutdown", sources=self.sources())
        self._limiters.clear()
        self._closed = True
