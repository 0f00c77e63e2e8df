"""
Alerting
========

Operational alert events and the sinks that deliver them.

Alerts carry enough context (domain, consecutive-error count, last error)
to triage without consulting logs.

Version: 0.1.0
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable
from uuid import uuid4

import httpx
from pydantic import BaseModel, Field

from shared.config.settings import AlertingSettings
from shared.logging import get_logger


logger = get_logger(__name__)


class AlertSeverity(str, Enum):
    """Alert severity levels."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertType(str, Enum):
    """Operational alert types."""

    ENDPOINT_SLA_BREACH = "ENDPOINT_SLA_BREACH"
    ENDPOINT_CONSECUTIVE_ERRORS = "ENDPOINT_CONSECUTIVE_ERRORS"
    ENDPOINT_RECOVERED = "ENDPOINT_RECOVERED"
    CIRCUIT_BREAKER_OPEN = "CIRCUIT_BREAKER_OPEN"
    CIRCUIT_BREAKER_RESET = "CIRCUIT_BREAKER_RESET"
    DISCOVERY_ZERO_URLS = "DISCOVERY_ZERO_URLS"


class AlertEvent(BaseModel):
    """An operational alert."""

    alert_id: str = Field(default_factory=lambda: str(uuid4()))
    type: AlertType
    severity: AlertSeverity = AlertSeverity.CRITICAL
    entity_id: str | None = None
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


@runtime_checkable
class AlertSink(Protocol):
    """Capability that forwards alert events (Slack, email, ...)."""

    async def send(self, event: AlertEvent) -> None: ...


class LoggingAlertSink:
    """Writes alerts to the structured log only."""

    async def send(self, event: AlertEvent) -> None:
        logger.warning(
            "alert_raised",
            alert_id=event.alert_id,
            alert_type=event.type.value,
            severity=event.severity.value,
            entity_id=event.entity_id,
            message=event.message,
            details=event.details,
        )


class InMemoryAlertSink:
    """Collects alerts in memory."""

    def __init__(self) -> None:
        self.events: list[AlertEvent] = []

    async def send(self, event: AlertEvent) -> None:
        self.events.append(event)

    def of_type(self, alert_type: AlertType) -> list[AlertEvent]:
        return [e for e in self.events if e.type == alert_type]


SEVERITY_EMOJI = {
    AlertSeverity.INFO: ":information_source:",
    AlertSeverity.WARNING: ":warning:",
    AlertSeverity.CRITICAL: ":rotating_light:",
}


class SlackAlertSink:
    """
    Posts alerts to a Slack incoming webhook.

    Delivery failures are logged and do not propagate, so a Slack outage
    never aborts a health check or discovery run.
    """

    def __init__(self, webhook_url: str, timeout: float = 10.0) -> None:
        self._webhook_url = webhook_url
        self._client = httpx.AsyncClient(timeout=timeout)

    @staticmethod
    def build_blocks(event: AlertEvent) -> list[dict[str, Any]]:
        """Render an alert as Slack blocks."""
        fields = [
            {"type": "mrkdwn", "text": f"*{key}:*\n{value}"}
            for key, value in event.details.items()
            if value is not None
        ]
        blocks: list[dict[str, Any]] = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"{SEVERITY_EMOJI[event.severity]} {event.type.value}",
                    "emoji": True,
                },
            },
            {"type": "section", "text": {"type": "mrkdwn", "text": event.message}},
        ]
        if fields:
            # Slack caps section fields at 10
            blocks.append({"type": "section", "fields": fields[:10]})
        blocks.append(
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": f"Alert {event.alert_id} | {event.occurred_at.isoformat()}",
                    }
                ],
            }
        )
        return blocks

    async def send(self, event: AlertEvent) -> None:
        try:
            response = await self._client.post(
                self._webhook_url,
                json={"text": event.message, "blocks": self.build_blocks(event)},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                "slack_alert_failed",
                alert_id=event.alert_id,
                alert_type=event.type.value,
                error=str(e),
            )

    async def close(self) -> None:
        await self._client.aclose()


def create_alert_sink(config: AlertingSettings) -> AlertSink:
    """Slack when a webhook is configured, otherwise the structured log."""
    webhook_url = config.slack_webhook_url.get_secret_value()
    if config.enabled and webhook_url:
        return SlackAlertSink(webhook_url, timeout=config.timeout_seconds)
    return LoggingAlertSink()
