"""
Tests for Alert Sinks
=====================

Version: 0.1.0
"""

import json

import httpx
import pytest
from pydantic import SecretStr

from services.regulatory_truth.alerting import (
    AlertEvent,
    AlertSeverity,
    AlertType,
    LoggingAlertSink,
    SlackAlertSink,
    create_alert_sink,
)
from shared.config.settings import AlertingSettings


def event(**overrides: object) -> AlertEvent:
    values: dict[str, object] = {
        "type": AlertType.CIRCUIT_BREAKER_OPEN,
        "entity_id": "hzzo.hr",
        "message": 'Circuit breaker OPEN for domain "hzzo.hr" after 5 errors',
        "details": {"domain": "hzzo.hr", "consecutiveErrors": 5, "lastError": None},
    }
    values.update(overrides)
    return AlertEvent(**values)


class TestCreateAlertSink:
    """Tests for create_alert_sink."""

    def test_logging_without_webhook(self) -> None:
        sink = create_alert_sink(AlertingSettings(enabled=True, slack_webhook_url=SecretStr("")))

        assert isinstance(sink, LoggingAlertSink)

    def test_logging_when_disabled(self) -> None:
        sink = create_alert_sink(
            AlertingSettings(enabled=False, slack_webhook_url=SecretStr("https://hooks.test/x"))
        )

        assert isinstance(sink, LoggingAlertSink)

    def test_slack_with_webhook(self) -> None:
        sink = create_alert_sink(
            AlertingSettings(enabled=True, slack_webhook_url=SecretStr("https://hooks.test/x"))
        )

        assert isinstance(sink, SlackAlertSink)


class TestSlackAlertSink:
    """Tests for SlackAlertSink."""

    def test_blocks_skip_empty_details(self) -> None:
        blocks = SlackAlertSink.build_blocks(event(severity=AlertSeverity.WARNING))

        assert blocks[0]["text"]["text"] == ":warning: CIRCUIT_BREAKER_OPEN"
        field_texts = [f["text"] for f in blocks[2]["fields"]]
        assert field_texts == ["*domain:*\nhzzo.hr", "*consecutiveErrors:*\n5"]

    @pytest.mark.asyncio
    async def test_posts_to_webhook(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="ok")

        sink = SlackAlertSink("https://hooks.test/x")
        await sink.close()
        sink._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        try:
            await sink.send(event())
        finally:
            await sink.close()

        body = json.loads(seen[0].content)
        assert body["text"].startswith("Circuit breaker OPEN")
        assert body["blocks"][0]["type"] == "header"

    @pytest.mark.asyncio
    async def test_delivery_failure_does_not_raise(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        sink = SlackAlertSink("https://hooks.test/x")
        await sink.close()
        sink._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        try:
            await sink.send(event())
        finally:
            await sink.close()
