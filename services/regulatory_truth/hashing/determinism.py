"""
Determinism Hashes
==================

Order-independent content hashes for idempotent composition retries.

A composition attempt is described by two hashes:
- inputs hash: which candidate facts, evidence and agent runs were used,
  plus the composition config
- evidence hash: the content of every evidence record involved

A retry whose hashes equal the last recorded attempt is a no-op and can
short-circuit. Any change means evidence moved underneath the attempt
and composition must run again. The comparison is an optimistic check,
not a lock: concurrent attempts resolve last-writer-wins at the store.

All functions are pure. Output is lowercase hex SHA-256.

Version: 0.1.0
"""

import hashlib
import json
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


HASH_ALGO = "sha256"


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, set | frozenset):
        return sorted(value, key=canonical_json)
    raise TypeError(f"Object of type {type(value).__name__} is not canonically serializable")


def canonical_json(value: Any) -> str:
    """JSON with sorted keys and compact separators."""
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )


def sha256_hex(data: str | bytes) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def _sorted_ids(ids: Iterable[Any]) -> list[str]:
    return sorted({str(i) for i in ids})


def compute_inputs_hash(
    candidate_fact_ids: Iterable[Any],
    evidence_ids: Iterable[Any],
    agent_run_ids: Iterable[Any] = (),
    config: Mapping[str, Any] | None = None,
) -> str:
    """
    Hash of the inputs of one composition attempt.

    Each id list is de-duplicated and sorted, so permutations hash equal.
    """
    payload = {
        "candidateFactIds": _sorted_ids(candidate_fact_ids),
        "evidenceIds": _sorted_ids(evidence_ids),
        "agentRunIds": _sorted_ids(agent_run_ids),
        "config": dict(config or {}),
    }
    return sha256_hex(canonical_json(payload))


class EvidenceRecord(BaseModel):
    """Evidence identity plus either its raw content or a content hash."""

    id: str
    raw_content: str | None = None
    content_hash: str | None = None

    @model_validator(mode="after")
    def _require_content(self) -> "EvidenceRecord":
        if self.raw_content is None and self.content_hash is None:
            raise ValueError(f"Evidence record {self.id} needs raw_content or content_hash")
        return self

    def digest(self) -> str:
        if self.raw_content is not None:
            return sha256_hex(self.raw_content)
        return str(self.content_hash).lower()


def compute_evidence_hash(records: Iterable[EvidenceRecord | Mapping[str, Any]]) -> str:
    """
    Hash over evidence content, independent of record order.

    Records may be `EvidenceRecord` instances or mappings with `id` and
    either `raw_content`/`rawContent` or `content_hash`/`contentHash`.
    """
    normalized: list[EvidenceRecord] = []
    for record in records:
        if isinstance(record, EvidenceRecord):
            normalized.append(record)
            continue
        normalized.append(
            EvidenceRecord(
                id=str(record["id"]),
                raw_content=record.get("raw_content", record.get("rawContent")),
                content_hash=record.get("content_hash", record.get("contentHash")),
            )
        )

    entries = [{"id": r.id, "sha256": r.digest()} for r in normalized]
    entries.sort(key=lambda e: (e["id"], e["sha256"]))
    return sha256_hex(canonical_json(entries))


class CompositionHashes(BaseModel):
    """Hashes recorded with a composition attempt."""

    inputs_hash: str
    evidence_hash: str
    hash_algo: str = HASH_ALGO


class IdempotencyOutcome(str, Enum):
    SHORT_CIRCUIT = "short_circuit"
    PROCEED = "proceed"


class IdempotencyReason(str, Enum):
    UNCHANGED = "unchanged"
    FIRST_ATTEMPT = "first_attempt"
    INPUTS_CHANGED = "inputs_changed"
    EVIDENCE_CHANGED = "evidence_changed"
    ALGORITHM_CHANGED = "algorithm_changed"


class IdempotencyDecision(BaseModel):
    """Whether a composition retry can be skipped, and why."""

    outcome: IdempotencyOutcome
    reason: IdempotencyReason
    current: CompositionHashes
    previous: CompositionHashes | None = None
    changed: list[str] = Field(default_factory=list)

    @property
    def should_short_circuit(self) -> bool:
        return self.outcome == IdempotencyOutcome.SHORT_CIRCUIT


def decide_composition(
    previous: CompositionHashes | None,
    current: CompositionHashes,
) -> IdempotencyDecision:
    """Compare the last recorded attempt with the current one."""
    if previous is None:
        return IdempotencyDecision(
            outcome=IdempotencyOutcome.PROCEED,
            reason=IdempotencyReason.FIRST_ATTEMPT,
            current=current,
        )

    if previous.hash_algo != current.hash_algo:
        return IdempotencyDecision(
            outcome=IdempotencyOutcome.PROCEED,
            reason=IdempotencyReason.ALGORITHM_CHANGED,
            current=current,
            previous=previous,
            changed=["hash_algo"],
        )

    changed = []
    if previous.inputs_hash != current.inputs_hash:
        changed.append("inputs_hash")
    if previous.evidence_hash != current.evidence_hash:
        changed.append("evidence_hash")

    if not changed:
        return IdempotencyDecision(
            outcome=IdempotencyOutcome.SHORT_CIRCUIT,
            reason=IdempotencyReason.UNCHANGED,
            current=current,
            previous=previous,
        )

    # Evidence drift takes precedence over input changes
    reason = (
        IdempotencyReason.EVIDENCE_CHANGED
        if "evidence_hash" in changed
        else IdempotencyReason.INPUTS_CHANGED
    )
    return IdempotencyDecision(
        outcome=IdempotencyOutcome.PROCEED,
        reason=reason,
        current=current,
        previous=previous,
        changed=changed,
    )
