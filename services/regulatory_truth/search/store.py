"""
Vector Store
============

Nearest-neighbour reads over source pointers and the rule lookups that
go with them.

Scalar filters (domain, confidence floor, not deleted, has embedding) are
applied in SQL before ranking, and ranking uses the pgvector cosine
distance operator inside the database, never client-side.

Version: 0.1.0
"""

from collections.abc import Sequence
from datetime import date
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel
from sqlalchemy import bindparam, text

from services.regulatory_truth.storage.vector import to_vector_literal
from shared.database.postgres import PostgresClient
from shared.logging import get_logger
from shared.models.regulatory import RegulatoryRule, RuleStatus, SourcePointer


logger = get_logger(__name__)


class PointerCandidate(BaseModel):
    """A source pointer with its cosine similarity to the query."""

    pointer: SourcePointer
    similarity: float


@runtime_checkable
class VectorStore(Protocol):
    """Read-only store capability used by semantic search."""

    async def nearest_pointers(
        self,
        embedding: Sequence[float],
        k: int,
        domain: str | None = None,
        min_confidence: float = 0.0,
    ) -> list[PointerCandidate]:
        """Top-k pointers by cosine similarity, most similar first."""
        ...

    async def effective_rules_for_pointers(
        self,
        pointer_ids: Sequence[str],
        as_of: date,
        published_only: bool = False,
    ) -> dict[str, list[RegulatoryRule]]:
        """Rules effective on `as_of` that cite each pointer, keyed by pointer id."""
        ...

    async def get_pointer(self, pointer_id: str) -> SourcePointer | None: ...


_POINTER_COLUMNS = """
    sp.id, sp.evidence_id, sp.domain, sp.value_type, sp.extracted_value,
    sp.exact_quote, sp.context_before, sp.context_after, sp.confidence,
    sp.law_reference, sp.article_number, sp.node_path, sp.deleted_at, sp.created_at
"""


def _pointer_from_row(row: Any) -> SourcePointer:
    return SourcePointer(
        id=row["id"],
        evidence_id=row["evidence_id"],
        domain=row["domain"],
        value_type=row["value_type"],
        extracted_value=row["extracted_value"],
        exact_quote=row["exact_quote"],
        context_before=row["context_before"],
        context_after=row["context_after"],
        confidence=row["confidence"],
        law_reference=row["law_reference"],
        article_number=row["article_number"],
        node_path=row["node_path"],
        deleted_at=row["deleted_at"],
        created_at=row["created_at"],
    )


class PgVectorStore:
    """`VectorStore` over PostgreSQL with the pgvector extension."""

    def __init__(self, client: PostgresClient) -> None:
        self._client = client

    async def nearest_pointers(
        self,
        embedding: Sequence[float],
        k: int,
        domain: str | None = None,
        min_confidence: float = 0.0,
    ) -> list[PointerCandidate]:
        filters = [
            "sp.deleted_at IS NULL",
            "sp.embedding IS NOT NULL",
            "sp.confidence >= :min_confidence",
        ]
        params: dict[str, Any] = {
            "embedding": to_vector_literal(embedding),
            "min_confidence": min_confidence,
            "k": k,
        }
        if domain is not None:
            filters.append("sp.domain = :domain")
            params["domain"] = domain

        query = text(
            f"""
            SELECT {_POINTER_COLUMNS},
                   1 - (sp.embedding <=> CAST(:embedding AS vector)) AS similarity
            FROM source_pointers sp
            WHERE {" AND ".join(filters)}
            ORDER BY sp.embedding <=> CAST(:embedding AS vector)
            LIMIT :k
            """
        )

        async with self._client.session() as session:
            result = await session.execute(query, params)
            rows = result.mappings().all()

        return [
            PointerCandidate(pointer=_pointer_from_row(row), similarity=float(row["similarity"]))
            for row in rows
        ]

    async def effective_rules_for_pointers(
        self,
        pointer_ids: Sequence[str],
        as_of: date,
        published_only: bool = False,
    ) -> dict[str, list[RegulatoryRule]]:
        if not pointer_ids:
            return {}

        status_filter = "AND r.status = :published" if published_only else ""
        query = text(
            f"""
            SELECT rsp.source_pointer_id,
                   r.id, r.concept_slug, r.title, r.status, r.risk_tier,
                   r.authority_level, r.value, r.value_type, r.effective_from,
                   r.effective_until, r.superseded_by_id, r.inputs_hash,
                   r.evidence_hash, r.hash_algo
            FROM rule_source_pointers rsp
            JOIN regulatory_rules r ON r.id = rsp.rule_id
            WHERE rsp.source_pointer_id IN :pointer_ids
              AND r.effective_from <= :as_of
              AND (r.effective_until IS NULL OR r.effective_until >= :as_of)
              {status_filter}
            ORDER BY r.effective_from DESC, r.id
            """
        ).bindparams(bindparam("pointer_ids", expanding=True))

        params: dict[str, Any] = {"pointer_ids": list(pointer_ids), "as_of": as_of}
        if published_only:
            params["published"] = RuleStatus.PUBLISHED.value

        async with self._client.session() as session:
            result = await session.execute(query, params)
            rows = result.mappings().all()

        grouped: dict[str, list[RegulatoryRule]] = {}
        for row in rows:
            rule = RegulatoryRule(
                id=row["id"],
                concept_slug=row["concept_slug"],
                title=row["title"],
                status=row["status"],
                risk_tier=row["risk_tier"],
                authority_level=row["authority_level"],
                value=row["value"],
                value_type=row["value_type"],
                effective_from=row["effective_from"],
                effective_until=row["effective_until"],
                superseded_by_id=row["superseded_by_id"],
                inputs_hash=row["inputs_hash"],
                evidence_hash=row["evidence_hash"],
                hash_algo=row["hash_algo"],
            )
            grouped.setdefault(row["source_pointer_id"], []).append(rule)
        return grouped

    async def get_pointer(self, pointer_id: str) -> SourcePointer | None:
        query = text(
            f"""
            SELECT {_POINTER_COLUMNS}
            FROM source_pointers sp
            WHERE sp.id = :pointer_id AND sp.deleted_at IS NULL
            """
        )
        async with self._client.session() as session:
            result = await session.execute(query, {"pointer_id": pointer_id})
            row = result.mappings().first()

        return _pointer_from_row(row) if row is not None else None
