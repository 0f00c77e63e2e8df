"""
Watchdog Routes
===============

Circuit breaker inspection and administrative reset, and on-demand
endpoint health checks.

Version: 0.1.0
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from services.regulatory_truth.alerting import AlertSink
from services.regulatory_truth.dependencies import get_alert_sink, get_rate_limiter_registry
from services.regulatory_truth.ratelimit import DomainStatus, RateLimiterRegistry
from services.regulatory_truth.watchdog import (
    CircuitBreakerStatus,
    EndpointHealthReport,
    EndpointSnapshot,
    OpenAlert,
    get_circuit_breaker_status,
    run_endpoint_health_check,
)
from shared.config import settings
from shared.logging import get_logger


logger = get_logger(__name__)

router = APIRouter()


class CircuitResetRequest(BaseModel):
    actor: str = Field(..., min_length=1, max_length=100)
    reason: str = Field(..., min_length=1, max_length=500)


class CircuitResetResponse(BaseModel):
    domain: str
    previous: DomainStatus
    current: DomainStatus


class EndpointHealthRequest(BaseModel):
    run_id: str | None = None
    endpoints: list[EndpointSnapshot] = Field(default_factory=list)
    open_alerts: list[OpenAlert] = Field(default_factory=list)


@router.get("/circuit-breakers", response_model=list[CircuitBreakerStatus])
async def list_circuit_breakers(
    registry: RateLimiterRegistry = Depends(get_rate_limiter_registry),
) -> list[CircuitBreakerStatus]:
    """Circuit state of every domain the process has contacted."""
    return get_circuit_breaker_status(registry)


@router.post("/circuit-breakers/{domain}/reset", response_model=CircuitResetResponse)
async def reset_circuit_breaker(
    domain: str,
    request: CircuitResetRequest,
    registry: RateLimiterRegistry = Depends(get_rate_limiter_registry),
) -> CircuitResetResponse:
    """Close a domain's circuit. Audited and alerted."""
    limiter = registry.find_domain(domain)
    if limiter is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Domain {domain} is not tracked by any rate limiter",
        )

    previous = await limiter.reset_circuit_breaker(domain, request.actor, request.reason)
    return CircuitResetResponse(
        domain=domain,
        previous=previous,
        current=limiter.get_status(domain),
    )


@router.post("/endpoint-health", response_model=EndpointHealthReport)
async def check_endpoint_health(
    request: EndpointHealthRequest,
    registry: RateLimiterRegistry = Depends(get_rate_limiter_registry),
    alert_sink: AlertSink = Depends(get_alert_sink),
) -> EndpointHealthReport:
    """Run the endpoint health check against the supplied endpoint state."""
    return await run_endpoint_health_check(
        request.endpoints,
        get_circuit_breaker_status(registry),
        alert_sink,
        run_id=request.run_id or str(uuid.uuid4()),
        open_alerts=request.open_alerts,
        sla_hours=settings.watchdog.sla_hours,
        errors_threshold=settings.watchdog.consecutive_errors_threshold,
        recovery_lookback_days=settings.watchdog.recovery_lookback_days,
    )
