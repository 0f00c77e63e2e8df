"""
Endpoint Health
===============

Health checks for CRITICAL discovery endpoints and the domains behind
them.

Two independent signals are computed per endpoint:
- SLA breach: never successfully scraped, or last success older than the SLA
- consecutive errors: failure streak at or above the threshold

An endpoint that is SLA-breached pages once for the breach; its error
streak is not paged separately. Open circuit breakers are read from the
live, process-local limiter snapshot.

Version: 0.1.0
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field

from services.regulatory_truth.alerting import (
    AlertEvent,
    AlertSeverity,
    AlertSink,
    AlertType,
)
from services.regulatory_truth.ratelimit import DomainRateLimiter, RateLimiterRegistry
from shared.logging import get_logger


logger = get_logger(__name__)

SLA_BREACH_HOURS = 24.0
CONSECUTIVE_ERRORS_THRESHOLD = 3
RECOVERY_LOOKBACK_DAYS = 7

RECOVERABLE_ALERT_TYPES = frozenset(
    {AlertType.ENDPOINT_SLA_BREACH, AlertType.ENDPOINT_CONSECUTIVE_ERRORS}
)


class EndpointPriority(str, Enum):
    """Discovery endpoint priority."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class EndpointSnapshot(BaseModel):
    """Stored state of a discovery endpoint, as read by the watchdog."""

    id: str
    domain: str
    path: str
    name: str
    priority: EndpointPriority = EndpointPriority.CRITICAL
    last_scraped_at: datetime | None = None
    consecutive_errors: int = Field(default=0, ge=0)
    last_error: str | None = None
    is_active: bool = True


class EndpointHealthStatus(BaseModel):
    """Computed health of one endpoint."""

    id: str
    domain: str
    path: str
    name: str
    priority: EndpointPriority
    last_success_at: datetime | None
    consecutive_errors: int
    last_error: str | None
    is_active: bool
    is_sla_breached: bool
    has_consecutive_errors: bool
    hours_since_success: float | None

    @property
    def is_healthy(self) -> bool:
        return not self.is_sla_breached and not self.has_consecutive_errors

    @property
    def endpoint(self) -> str:
        return f"{self.domain}{self.path}"


class CircuitBreakerStatus(BaseModel):
    domain: str
    is_open: bool
    consecutive_errors: int
    last_error: str | None = None


class OpenAlert(BaseModel):
    """An unresolved alert previously raised for an entity."""

    alert_id: str
    type: AlertType
    entity_id: str | None = None
    occurred_at: datetime


class EndpointHealthReport(BaseModel):
    timestamp: datetime
    run_id: str
    total_critical: int
    healthy_critical: int
    unhealthy_critical: int
    endpoints: list[EndpointHealthStatus] = Field(default_factory=list)
    alerts_raised: list[str] = Field(default_factory=list)
    recovered_endpoint_ids: list[str] = Field(default_factory=list)
    resolved_alert_ids: list[str] = Field(default_factory=list)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_sla_breached(
    last_scraped_at: datetime | None,
    now: datetime,
    sla_hours: float = SLA_BREACH_HOURS,
) -> bool:
    """True when never scraped or the last success is older than `sla_hours`."""
    if last_scraped_at is None:
        return True
    return _as_utc(last_scraped_at) < _as_utc(now) - timedelta(hours=sla_hours)


def has_consecutive_errors(
    consecutive_errors: int,
    threshold: int = CONSECUTIVE_ERRORS_THRESHOLD,
) -> bool:
    return consecutive_errors >= threshold


def compute_endpoint_health(
    endpoints: Iterable[EndpointSnapshot],
    now: datetime | None = None,
    *,
    priority: EndpointPriority = EndpointPriority.CRITICAL,
    sla_hours: float = SLA_BREACH_HOURS,
    errors_threshold: int = CONSECUTIVE_ERRORS_THRESHOLD,
) -> list[EndpointHealthStatus]:
    """Health of every active endpoint with the given priority."""
    now = _as_utc(now or datetime.now(UTC))
    statuses = []

    for ep in endpoints:
        if not ep.is_active or ep.priority != priority:
            continue

        hours_since_success = None
        if ep.last_scraped_at is not None:
            elapsed = now - _as_utc(ep.last_scraped_at)
            hours_since_success = round(elapsed.total_seconds() / 3600, 1)

        statuses.append(
            EndpointHealthStatus(
                id=ep.id,
                domain=ep.domain,
                path=ep.path,
                name=ep.name,
                priority=ep.priority,
                last_success_at=ep.last_scraped_at,
                consecutive_errors=ep.consecutive_errors,
                last_error=ep.last_error,
                is_active=ep.is_active,
                is_sla_breached=is_sla_breached(ep.last_scraped_at, now, sla_hours),
                has_consecutive_errors=has_consecutive_errors(
                    ep.consecutive_errors, errors_threshold
                ),
                hours_since_success=hours_since_success,
            )
        )

    return statuses


def get_circuit_breaker_status(
    source: RateLimiterRegistry | DomainRateLimiter,
) -> list[CircuitBreakerStatus]:
    """Circuit state of every domain tracked by a limiter or a whole registry."""
    if isinstance(source, DomainRateLimiter):
        snapshots = [source.get_health_status()]
    else:
        snapshots = list(source.health_snapshot().values())

    breakers = []
    for health in snapshots:
        for domain, status in health.domains.items():
            breakers.append(
                CircuitBreakerStatus(
                    domain=domain,
                    is_open=status.is_circuit_broken,
                    consecutive_errors=status.consecutive_errors,
                    last_error=status.last_error,
                )
            )
    return sorted(breakers, key=lambda b: b.domain)


def _sla_breach_alert(ep: EndpointHealthStatus, run_id: str, sla_hours: float) -> AlertEvent:
    if ep.last_success_at is not None:
        reason = f"last success {ep.hours_since_success}h ago"
    else:
        reason = "never successfully scraped"

    return AlertEvent(
        type=AlertType.ENDPOINT_SLA_BREACH,
        severity=AlertSeverity.CRITICAL,
        entity_id=ep.id,
        message=f'CRITICAL endpoint "{ep.name}" SLA breach: {reason}',
        details={
            "endpoint": ep.endpoint,
            "name": ep.name,
            "priority": ep.priority.value,
            "lastSuccessAt": ep.last_success_at.isoformat() if ep.last_success_at else None,
            "hoursSinceSuccess": ep.hours_since_success,
            "threshold": sla_hours,
            "runId": run_id,
        },
    )


def _consecutive_errors_alert(
    ep: EndpointHealthStatus,
    run_id: str,
    errors_threshold: int,
) -> AlertEvent:
    return AlertEvent(
        type=AlertType.ENDPOINT_CONSECUTIVE_ERRORS,
        severity=AlertSeverity.CRITICAL,
        entity_id=ep.id,
        message=f'CRITICAL endpoint "{ep.name}" has {ep.consecutive_errors} consecutive errors',
        details={
            "endpoint": ep.endpoint,
            "name": ep.name,
            "priority": ep.priority.value,
            "consecutiveErrors": ep.consecutive_errors,
            "lastError": ep.last_error,
            "threshold": errors_threshold,
            "runId": run_id,
        },
    )


def _circuit_open_alert(breaker: CircuitBreakerStatus, run_id: str) -> AlertEvent:
    return AlertEvent(
        type=AlertType.CIRCUIT_BREAKER_OPEN,
        severity=AlertSeverity.CRITICAL,
        entity_id=breaker.domain,
        message=(
            f'Circuit breaker OPEN for domain "{breaker.domain}" '
            f"after {breaker.consecutive_errors} errors"
        ),
        details={
            "domain": breaker.domain,
            "consecutiveErrors": breaker.consecutive_errors,
            "lastError": breaker.last_error,
            "runId": run_id,
        },
    )


def _recovered_alert(ep: EndpointHealthStatus, run_id: str, resolved: int) -> AlertEvent:
    return AlertEvent(
        type=AlertType.ENDPOINT_RECOVERED,
        severity=AlertSeverity.INFO,
        entity_id=ep.id,
        message=f"Endpoint `{ep.endpoint}` has recovered and is now healthy.",
        details={
            "endpoint": ep.name,
            "domain": ep.domain,
            "runId": run_id,
            "resolvedAlerts": resolved,
        },
    )


async def run_endpoint_health_check(
    endpoints: Iterable[EndpointSnapshot],
    breakers: Sequence[CircuitBreakerStatus],
    alert_sink: AlertSink,
    run_id: str,
    now: datetime | None = None,
    open_alerts: Sequence[OpenAlert] = (),
    *,
    sla_hours: float = SLA_BREACH_HOURS,
    errors_threshold: int = CONSECUTIVE_ERRORS_THRESHOLD,
    recovery_lookback_days: int = RECOVERY_LOOKBACK_DAYS,
) -> EndpointHealthReport:
    """
    Check CRITICAL endpoints and open circuits, raising alerts.

    `open_alerts` are unresolved alerts from earlier runs. Endpoint alerts
    raised within the lookback window for endpoints that are healthy now
    produce one ENDPOINT_RECOVERED notification per endpoint; their ids are
    returned in `resolved_alert_ids` so the caller can mark them resolved.
    """
    timestamp = _as_utc(now or datetime.now(UTC))
    statuses = compute_endpoint_health(
        endpoints,
        timestamp,
        sla_hours=sla_hours,
        errors_threshold=errors_threshold,
    )

    total = len(statuses)
    unhealthy = [ep for ep in statuses if not ep.is_healthy]

    logger.info(
        "endpoint_health_checked",
        run_id=run_id,
        total_critical=total,
        healthy_critical=total - len(unhealthy),
        unhealthy_critical=len(unhealthy),
    )

    events: list[AlertEvent] = []
    for ep in statuses:
        if ep.is_sla_breached:
            events.append(_sla_breach_alert(ep, run_id, sla_hours))
    for ep in statuses:
        if ep.has_consecutive_errors and not ep.is_sla_breached:
            events.append(_consecutive_errors_alert(ep, run_id, errors_threshold))
    for breaker in breakers:
        if breaker.is_open:
            events.append(_circuit_open_alert(breaker, run_id))

    for event in events:
        await alert_sink.send(event)

    recovered_ids, resolved_ids = await _notify_recoveries(
        statuses,
        open_alerts,
        alert_sink,
        run_id,
        since=timestamp - timedelta(days=recovery_lookback_days),
    )

    return EndpointHealthReport(
        timestamp=timestamp,
        run_id=run_id,
        total_critical=total,
        healthy_critical=total - len(unhealthy),
        unhealthy_critical=len(unhealthy),
        endpoints=statuses,
        alerts_raised=[event.alert_id for event in events],
        recovered_endpoint_ids=recovered_ids,
        resolved_alert_ids=resolved_ids,
    )


async def _notify_recoveries(
    statuses: list[EndpointHealthStatus],
    open_alerts: Sequence[OpenAlert],
    alert_sink: AlertSink,
    run_id: str,
    since: datetime,
) -> tuple[list[str], list[str]]:
    healthy = {ep.id: ep for ep in statuses if ep.is_healthy}
    if not healthy:
        return [], []

    alerts_by_endpoint: dict[str, list[OpenAlert]] = {}
    for alert in open_alerts:
        if (
            alert.type in RECOVERABLE_ALERT_TYPES
            and alert.entity_id in healthy
            and _as_utc(alert.occurred_at) >= since
        ):
            alerts_by_endpoint.setdefault(alert.entity_id, []).append(alert)

    recovered_ids: list[str] = []
    resolved_ids: list[str] = []
    for endpoint_id, alerts in alerts_by_endpoint.items():
        ep = healthy[endpoint_id]
        await alert_sink.send(_recovered_alert(ep, run_id, len(alerts)))

        recovered_ids.append(endpoint_id)
        resolved_ids.extend(alert.alert_id for alert in alerts)
        logger.info(
            "endpoint_recovered",
            endpoint_id=endpoint_id,
            name=ep.name,
            resolved_alerts=len(alerts),
            run_id=run_id,
        )

    return recovered_ids, resolved_ids
