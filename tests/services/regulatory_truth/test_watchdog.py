"""
Tests for the Endpoint Health Watchdog
======================================

Tests for:
- SLA breach and error-streak detection
- Alert selection per run
- Circuit breaker reporting
- Recovery notifications

Version: 0.1.0
"""

from datetime import UTC, datetime, timedelta

import pytest

from services.regulatory_truth.alerting import AlertSeverity, AlertType, InMemoryAlertSink
from services.regulatory_truth.ratelimit import DomainRateLimitConfig, RateLimiterRegistry
from services.regulatory_truth.watchdog import (
    CircuitBreakerStatus,
    EndpointPriority,
    EndpointSnapshot,
    OpenAlert,
    compute_endpoint_health,
    get_circuit_breaker_status,
    has_consecutive_errors,
    is_sla_breached,
    run_endpoint_health_check,
)


NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


def endpoint(
    endpoint_id: str,
    hours_ago: float | None = 1.0,
    errors: int = 0,
    **overrides: object,
) -> EndpointSnapshot:
    values: dict[str, object] = {
        "id": endpoint_id,
        "domain": "narodne-novine.nn.hr",
        "path": f"/sitemap_{endpoint_id}.xml",
        "name": f"Narodne novine {endpoint_id}",
        "last_scraped_at": None if hours_ago is None else NOW - timedelta(hours=hours_ago),
        "consecutive_errors": errors,
    }
    values.update(overrides)
    return EndpointSnapshot(**values)


# ============================================================================
# Detection Tests
# ============================================================================


class TestDetection:
    """Tests for the two per-endpoint signals."""

    def test_never_scraped_is_breached(self) -> None:
        assert is_sla_breached(None, NOW) is True

    def test_sla_boundary(self) -> None:
        assert is_sla_breached(NOW - timedelta(hours=24), NOW) is False
        assert is_sla_breached(NOW - timedelta(hours=24, seconds=1), NOW) is True

    def test_naive_timestamps_treated_as_utc(self) -> None:
        naive = (NOW - timedelta(hours=30)).replace(tzinfo=None)

        assert is_sla_breached(naive, NOW) is True

    def test_error_threshold_inclusive(self) -> None:
        assert has_consecutive_errors(2) is False
        assert has_consecutive_errors(3) is True

    def test_null_last_scraped_without_errors(self) -> None:
        """Test a never-scraped endpoint breaches SLA but has no error streak."""
        [status] = compute_endpoint_health([endpoint("e1", hours_ago=None)], NOW)

        assert status.is_sla_breached is True
        assert status.has_consecutive_errors is False
        assert status.hours_since_success is None
        assert status.is_healthy is False

    def test_hours_rounded_to_one_decimal(self) -> None:
        [status] = compute_endpoint_health([endpoint("e1", hours_ago=5.26)], NOW)

        assert status.hours_since_success == 5.3

    def test_only_active_critical_endpoints(self) -> None:
        statuses = compute_endpoint_health(
            [
                endpoint("e1"),
                endpoint("e2", is_active=False),
                endpoint("e3", priority=EndpointPriority.HIGH),
            ],
            NOW,
        )

        assert [s.id for s in statuses] == ["e1"]


# ============================================================================
# Health Check Run Tests
# ============================================================================


class TestRunEndpointHealthCheck:
    """Tests for run_endpoint_health_check."""

    @pytest.mark.asyncio
    async def test_healthy_run_raises_nothing(self) -> None:
        sink = InMemoryAlertSink()

        report = await run_endpoint_health_check([endpoint("e1")], [], sink, "run-1", NOW)

        assert sink.events == []
        assert report.total_critical == 1
        assert report.healthy_critical == 1
        assert report.alerts_raised == []

    @pytest.mark.asyncio
    async def test_sla_breach_alert(self) -> None:
        sink = InMemoryAlertSink()

        await run_endpoint_health_check(
            [endpoint("e1", hours_ago=None)], [], sink, "run-1", NOW
        )

        [event] = sink.events
        assert event.type == AlertType.ENDPOINT_SLA_BREACH
        assert event.entity_id == "e1"
        assert "never successfully scraped" in event.message
        assert event.details["runId"] == "run-1"

    @pytest.mark.asyncio
    async def test_error_streak_alert(self) -> None:
        sink = InMemoryAlertSink()

        await run_endpoint_health_check(
            [endpoint("e1", errors=4, last_error="HTTP 503")], [], sink, "run-1", NOW
        )

        [event] = sink.events
        assert event.type == AlertType.ENDPOINT_CONSECUTIVE_ERRORS
        assert event.details["consecutiveErrors"] == 4
        assert event.details["lastError"] == "HTTP 503"

    @pytest.mark.asyncio
    async def test_breach_suppresses_error_streak_alert(self) -> None:
        """Test a breached endpoint pages once even with an error streak."""
        sink = InMemoryAlertSink()

        report = await run_endpoint_health_check(
            [endpoint("e1", hours_ago=48, errors=10)], [], sink, "run-1", NOW
        )

        assert [e.type for e in sink.events] == [AlertType.ENDPOINT_SLA_BREACH]
        assert report.unhealthy_critical == 1
        assert "48.0h ago" in sink.events[0].message

    @pytest.mark.asyncio
    async def test_circuit_open_alerts(self) -> None:
        sink = InMemoryAlertSink()
        breakers = [
            CircuitBreakerStatus(domain="hzzo.hr", is_open=True, consecutive_errors=5),
            CircuitBreakerStatus(domain="porezna-uprava.hr", is_open=False, consecutive_errors=1),
        ]

        report = await run_endpoint_health_check([], breakers, sink, "run-1", NOW)

        [event] = sink.events
        assert event.type == AlertType.CIRCUIT_BREAKER_OPEN
        assert event.entity_id == "hzzo.hr"
        assert report.alerts_raised == [event.alert_id]

    @pytest.mark.asyncio
    async def test_alert_order(self) -> None:
        sink = InMemoryAlertSink()
        breakers = [CircuitBreakerStatus(domain="hzzo.hr", is_open=True, consecutive_errors=5)]

        await run_endpoint_health_check(
            [endpoint("e1", errors=3), endpoint("e2", hours_ago=None)],
            breakers,
            sink,
            "run-1",
            NOW,
        )

        assert [e.type for e in sink.events] == [
            AlertType.ENDPOINT_SLA_BREACH,
            AlertType.ENDPOINT_CONSECUTIVE_ERRORS,
            AlertType.CIRCUIT_BREAKER_OPEN,
        ]


class TestRecovery:
    """Tests for recovery notifications."""

    @pytest.mark.asyncio
    async def test_recovered_endpoint_resolves_alerts(self) -> None:
        sink = InMemoryAlertSink()
        open_alerts = [
            OpenAlert(
                alert_id="a1",
                type=AlertType.ENDPOINT_SLA_BREACH,
                entity_id="e1",
                occurred_at=NOW - timedelta(days=1),
            ),
            OpenAlert(
                alert_id="a2",
                type=AlertType.ENDPOINT_CONSECUTIVE_ERRORS,
                entity_id="e1",
                occurred_at=NOW - timedelta(days=2),
            ),
        ]

        report = await run_endpoint_health_check(
            [endpoint("e1")], [], sink, "run-2", NOW, open_alerts
        )

        [event] = sink.events
        assert event.type == AlertType.ENDPOINT_RECOVERED
        assert event.severity == AlertSeverity.INFO
        assert event.details["resolvedAlerts"] == 2
        assert report.recovered_endpoint_ids == ["e1"]
        assert report.resolved_alert_ids == ["a1", "a2"]

    @pytest.mark.asyncio
    async def test_old_and_unrelated_alerts_ignored(self) -> None:
        sink = InMemoryAlertSink()
        open_alerts = [
            OpenAlert(
                alert_id="old",
                type=AlertType.ENDPOINT_SLA_BREACH,
                entity_id="e1",
                occurred_at=NOW - timedelta(days=8),
            ),
            OpenAlert(
                alert_id="circuit",
                type=AlertType.CIRCUIT_BREAKER_OPEN,
                entity_id="e1",
                occurred_at=NOW - timedelta(hours=1),
            ),
        ]

        report = await run_endpoint_health_check(
            [endpoint("e1")], [], sink, "run-2", NOW, open_alerts
        )

        assert sink.events == []
        assert report.resolved_alert_ids == []

    @pytest.mark.asyncio
    async def test_still_unhealthy_not_recovered(self) -> None:
        sink = InMemoryAlertSink()
        open_alerts = [
            OpenAlert(
                alert_id="a1",
                type=AlertType.ENDPOINT_CONSECUTIVE_ERRORS,
                entity_id="e1",
                occurred_at=NOW - timedelta(hours=2),
            )
        ]

        report = await run_endpoint_health_check(
            [endpoint("e1", errors=5)], [], sink, "run-2", NOW, open_alerts
        )

        assert [e.type for e in sink.events] == [AlertType.ENDPOINT_CONSECUTIVE_ERRORS]
        assert report.recovered_endpoint_ids == []


# ============================================================================
# Circuit Breaker Status Tests
# ============================================================================


class TestCircuitBreakerStatus:
    """Tests for get_circuit_breaker_status."""

    def test_reads_registry_snapshot(self) -> None:
        registry = RateLimiterRegistry(
            DomainRateLimitConfig(min_delay_ms=0, max_delay_ms=0), circuit_threshold=2
        )
        nn = registry.create("narodne-novine")
        hzzo = registry.create("hzzo")
        nn.record_success("narodne-novine.nn.hr")
        hzzo.record_error("hzzo.hr", "HTTP 500")
        hzzo.record_error("hzzo.hr", "HTTP 500")

        breakers = get_circuit_breaker_status(registry)

        assert [b.domain for b in breakers] == ["hzzo.hr", "narodne-novine.nn.hr"]
        assert breakers[0].is_open is True
        assert breakers[0].last_error == "HTTP 500"
        assert breakers[1].is_open is False

    def test_reads_single_limiter(self, zero_delay_limiter) -> None:
        zero_delay_limiter.record_error("hzzo.hr", "timeout")

        [breaker] = get_circuit_breaker_status(zero_delay_limiter)

        assert breaker.is_open is False
        assert breaker.consecutive_errors == 1
