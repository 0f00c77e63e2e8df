"""
Tests for Pipeline Stage Payloads
=================================

Tests for:
- Discriminated payload validation
- Stage router coverage and dispatch

Version: 0.1.0
"""

import json
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from services.regulatory_truth.discovery import DiscoveryCheckpoint
from services.regulatory_truth.parser import ContentClass
from services.regulatory_truth.pipeline import (
    ComposePayload,
    DiscoverPayload,
    IndexPayload,
    ParsePayload,
    StageRouter,
    parse_stage_payload,
)


# ============================================================================
# Payload Validation Tests
# ============================================================================


class TestParseStagePayload:
    """Tests for parse_stage_payload."""

    def test_mapping_selects_variant(self) -> None:
        payload = parse_stage_payload(
            {"stage": "parse", "run_id": "run-1", "evidence_id": "ev-1", "content_class": "HTML"}
        )

        assert isinstance(payload, ParsePayload)
        assert payload.content_class == ContentClass.HTML
        assert payload.attempt == 1

    def test_json_document(self) -> None:
        raw = json.dumps(
            {
                "stage": "discover",
                "run_id": "run-1",
                "source_slug": "narodne-novine",
                "sitemap_url": "https://narodne-novine.nn.hr/sitemap.xml",
                "checkpoint": {"last_completed_child_index": 4, "urls_emitted_so_far": 120},
            }
        )

        payload = parse_stage_payload(raw)

        assert isinstance(payload, DiscoverPayload)
        assert payload.checkpoint == DiscoveryCheckpoint(
            last_completed_child_index=4, urls_emitted_so_far=120
        )
        assert payload.max_urls == 10_000

    def test_bytes_document(self) -> None:
        payload = parse_stage_payload(b'{"stage": "index", "run_id": "r", "pointer_ids": ["p1"]}')

        assert isinstance(payload, IndexPayload)

    def test_compose_with_previous_hashes(self) -> None:
        payload = parse_stage_payload(
            {
                "stage": "compose",
                "run_id": "run-1",
                "concept_slug": "pdv-stopa",
                "candidate_fact_ids": ["f1"],
                "evidence_ids": ["ev-1"],
                "previous_hashes": {"inputs_hash": "a" * 64, "evidence_hash": "b" * 64},
            }
        )

        assert isinstance(payload, ComposePayload)
        assert payload.previous_hashes is not None
        assert payload.agent_run_ids == []

    def test_unknown_stage_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_stage_payload({"stage": "publish", "run_id": "run-1"})

    def test_missing_stage_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_stage_payload({"run_id": "run-1", "evidence_id": "ev-1"})

    def test_extra_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_stage_payload(
                {"stage": "index", "run_id": "r", "pointer_ids": ["p1"], "priority": 1}
            )

    def test_empty_compose_inputs_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_stage_payload(
                {
                    "stage": "compose",
                    "run_id": "r",
                    "concept_slug": "pdv-stopa",
                    "candidate_fact_ids": [],
                    "evidence_ids": ["ev-1"],
                }
            )

    def test_attempt_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            IndexPayload(run_id="r", pointer_ids=["p1"], attempt=0)


# ============================================================================
# Router Tests
# ============================================================================


def all_handlers() -> dict[type, AsyncMock]:
    return {
        DiscoverPayload: AsyncMock(return_value="discovered"),
        ParsePayload: AsyncMock(return_value="parsed"),
        ComposePayload: AsyncMock(return_value="composed"),
        IndexPayload: AsyncMock(return_value="indexed"),
    }


class TestStageRouter:
    """Tests for StageRouter."""

    def test_requires_every_stage(self) -> None:
        handlers = all_handlers()
        del handlers[IndexPayload]

        with pytest.raises(ValueError, match="IndexPayload"):
            StageRouter(handlers)

    def test_rejects_unknown_handler_type(self) -> None:
        handlers = all_handlers()
        handlers[dict] = AsyncMock()

        with pytest.raises(ValueError, match="dict"):
            StageRouter(handlers)

    @pytest.mark.asyncio
    async def test_dispatches_to_matching_handler(self) -> None:
        handlers = all_handlers()
        router = StageRouter(handlers)
        payload = ParsePayload(run_id="run-1", evidence_id="ev-1", content_class=ContentClass.TEXT)

        result = await router.dispatch(payload)

        assert result == "parsed"
        handlers[ParsePayload].assert_awaited_once_with(payload)
        handlers[IndexPayload].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dispatch_raw(self) -> None:
        handlers = all_handlers()
        router = StageRouter(handlers)

        result = await router.dispatch_raw('{"stage": "index", "run_id": "r", "pointer_ids": ["p"]}')

        assert result == "indexed"
