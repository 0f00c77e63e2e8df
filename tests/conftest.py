"""
Test Configuration
==================

Pytest fixtures for regulatory-truth tests.
"""

import os
import random
from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment
os.environ["ENVIRONMENT"] = "testing"
os.environ["ALERTING_ENABLED"] = "false"


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def seeded_rng() -> random.Random:
    return random.Random(42)


@pytest.fixture
def alert_sink() -> Any:
    """In-memory alert sink."""
    from services.regulatory_truth.alerting import InMemoryAlertSink

    return InMemoryAlertSink()


@pytest.fixture
def zero_delay_limiter(fake_clock: FakeClock, alert_sink: Any) -> Any:
    """Limiter with no politeness delay and a threshold of 5."""
    from services.regulatory_truth.ratelimit import DomainRateLimitConfig, DomainRateLimiter

    return DomainRateLimiter(
        DomainRateLimitConfig(min_delay_ms=0, max_delay_ms=0),
        circuit_threshold=5,
        cooldown_seconds=3600,
        clock=fake_clock,
        sleep=fake_clock.sleep,
        alert_sink=alert_sink,
    )


@pytest.fixture
def app_state(alert_sink: Any) -> dict[str, Any]:
    """Collaborators installed on the app in place of the lifespan ones."""
    from services.regulatory_truth.parser import DocumentParser
    from services.regulatory_truth.ratelimit import DomainRateLimitConfig, RateLimiterRegistry

    postgres = MagicMock()
    postgres.health_check = AsyncMock(
        return_value={"status": "healthy", "latency_ms": 1.0}
    )

    return {
        "postgres": postgres,
        "alert_sink": alert_sink,
        "search_service": MagicMock(),
        "document_parser": DocumentParser(),
        "document_repository": MagicMock(),
        "rate_limiter_registry": RateLimiterRegistry(
            DomainRateLimitConfig(min_delay_ms=0, max_delay_ms=0),
            circuit_threshold=5,
            alert_sink=alert_sink,
        ),
    }


@pytest_asyncio.fixture
async def regulatory_truth_client(
    app_state: dict[str, Any],
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client for the Regulatory Truth Service."""
    from services.regulatory_truth.main import app

    for name, value in app_state.items():
        setattr(app.state, name, value)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
