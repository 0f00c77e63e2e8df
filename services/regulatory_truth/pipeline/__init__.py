"""
Pipeline
========

Typed per-stage queue payloads and their router.
"""

from services.regulatory_truth.pipeline.stages import (
    STAGE_PAYLOAD_TYPES,
    ComposePayload,
    DiscoverPayload,
    IndexPayload,
    ParsePayload,
    StagePayload,
    StageRouter,
    parse_stage_payload,
)

__all__ = [
    "STAGE_PAYLOAD_TYPES",
    "ComposePayload",
    "DiscoverPayload",
    "IndexPayload",
    "ParsePayload",
    "StagePayload",
    "StageRouter",
    "parse_stage_payload",
]
