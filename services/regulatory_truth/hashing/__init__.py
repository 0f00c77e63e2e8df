"""
Determinism Hashing
===================

Pure content hashes used to detect identical-input retries.
"""

from services.regulatory_truth.hashing.determinism import (
    HASH_ALGO,
    CompositionHashes,
    EvidenceRecord,
    IdempotencyDecision,
    IdempotencyOutcome,
    IdempotencyReason,
    canonical_json,
    compute_evidence_hash,
    compute_inputs_hash,
    decide_composition,
    sha256_hex,
)

__all__ = [
    "HASH_ALGO",
    "CompositionHashes",
    "EvidenceRecord",
    "IdempotencyDecision",
    "IdempotencyOutcome",
    "IdempotencyReason",
    "canonical_json",
    "compute_evidence_hash",
    "compute_inputs_hash",
    "decide_composition",
    "sha256_hex",
]
