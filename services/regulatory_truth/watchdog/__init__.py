"""
Watchdog
========

Endpoint SLA and error-streak checks, circuit breaker reporting and
recovery notifications.
"""

from services.regulatory_truth.watchdog.endpoint_health import (
    CONSECUTIVE_ERRORS_THRESHOLD,
    SLA_BREACH_HOURS,
    CircuitBreakerStatus,
    EndpointHealthReport,
    EndpointHealthStatus,
    EndpointPriority,
    EndpointSnapshot,
    OpenAlert,
    compute_endpoint_health,
    get_circuit_breaker_status,
    has_consecutive_errors,
    is_sla_breached,
    run_endpoint_health_check,
)

__all__ = [
    "CONSECUTIVE_ERRORS_THRESHOLD",
    "SLA_BREACH_HOURS",
    "CircuitBreakerStatus",
    "EndpointHealthReport",
    "EndpointHealthStatus",
    "EndpointPriority",
    "EndpointSnapshot",
    "OpenAlert",
    "compute_endpoint_health",
    "get_circuit_breaker_status",
    "has_consecutive_errors",
    "is_sla_breached",
    "run_endpoint_health_check",
]
