"""
Pipeline Stage Payloads
=======================

Queue payloads for each pipeline stage as a closed set of variants keyed
by `stage`. A payload is validated once at the queue boundary and
handled by exactly one handler.

Stages:
- discover: walk a source's sitemap and emit candidate URLs
- parse: turn stored evidence into provision nodes
- compose: build a rule from candidate facts, idempotent on hashes
- index: embed source pointers for similarity search

Version: 0.1.0
"""

from collections.abc import Awaitable, Callable, Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from services.regulatory_truth.discovery import DiscoveryCheckpoint
from services.regulatory_truth.hashing import CompositionHashes
from services.regulatory_truth.parser import ContentClass
from shared.logging import get_logger


logger = get_logger(__name__)


class _StageBase(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    run_id: str
    attempt: int = Field(default=1, ge=1)


class DiscoverPayload(_StageBase):
    stage: Literal["discover"] = "discover"
    source_slug: str
    sitemap_url: str
    url_pattern: str | None = None
    max_urls: int = Field(default=10_000, ge=1)
    checkpoint: DiscoveryCheckpoint | None = None


class ParsePayload(_StageBase):
    stage: Literal["parse"] = "parse"
    evidence_id: str
    content_class: ContentClass


class ComposePayload(_StageBase):
    stage: Literal["compose"] = "compose"
    concept_slug: str
    candidate_fact_ids: list[str] = Field(min_length=1)
    evidence_ids: list[str] = Field(min_length=1)
    agent_run_ids: list[str] = Field(default_factory=list)
    previous_hashes: CompositionHashes | None = None


class IndexPayload(_StageBase):
    stage: Literal["index"] = "index"
    pointer_ids: list[str] = Field(min_length=1)


StagePayload = Annotated[
    DiscoverPayload | ParsePayload | ComposePayload | IndexPayload,
    Field(discriminator="stage"),
]

STAGE_PAYLOAD_TYPES: tuple[type[_StageBase], ...] = (
    DiscoverPayload,
    ParsePayload,
    ComposePayload,
    IndexPayload,
)

_payload_adapter: TypeAdapter[StagePayload] = TypeAdapter(StagePayload)


def parse_stage_payload(data: Mapping[str, Any] | str | bytes) -> StagePayload:
    """
    Validate raw queue data (a mapping or JSON document) into its variant.

    Raises:
        pydantic.ValidationError: unknown stage or malformed payload
    """
    if isinstance(data, (str, bytes)):
        return _payload_adapter.validate_json(data)
    return _payload_adapter.validate_python(data)


StageHandler = Callable[[Any], Awaitable[Any]]


class StageRouter:
    """
    Dispatches payloads to one handler per stage variant.

    Construction fails unless every variant has a handler, so adding a
    stage without wiring it cannot reach a worker.
    """

    def __init__(self, handlers: Mapping[type[_StageBase], StageHandler]) -> None:
        missing = [t.__name__ for t in STAGE_PAYLOAD_TYPES if t not in handlers]
        unknown = [t.__name__ for t in handlers if t not in STAGE_PAYLOAD_TYPES]
        if missing or unknown:
            raise ValueError(
                f"Stage handlers must cover every payload type exactly "
                f"(missing: {missing}, unknown: {unknown})"
            )
        self._handlers = dict(handlers)

    async def dispatch(self, payload: StagePayload) -> Any:
        handler = self._handlers[type(payload)]
        logger.info(
            "stage_dispatched",
            stage=payload.stage,
            run_id=payload.run_id,
            attempt=payload.attempt,
        )
        return await handler(payload)

    async def dispatch_raw(self, data: Mapping[str, Any] | str | bytes) -> Any:
        """Validate then dispatch."""
        return await self.dispatch(parse_stage_payload(data))
