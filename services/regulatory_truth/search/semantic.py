"""
Semantic Search
===============

Similarity search over source pointers with temporal rule resolution.

Each call embeds its query once and issues at most two store reads:
1. top-k nearest pointers, scalar filters applied inside the store
2. rules currently effective for the surviving pointers

`min_similarity` is a post-filter over an over-fetched window of
`ceil(limit * overfetch_factor)` candidates, because the store's top-k
query does not itself guarantee a similarity floor. Result sets can be
shorter than `limit`.

Search never mutates data and is safe under concurrent readers.

Version: 0.1.0
"""

import math
from datetime import UTC, date, datetime

from pydantic import BaseModel, Field

from services.regulatory_truth.errors import PointerNotFound
from services.regulatory_truth.search.embeddings import EmbeddingProvider
from services.regulatory_truth.search.store import PointerCandidate, VectorStore
from shared.logging import get_logger
from shared.models.regulatory import RegulatoryRule, RuleStatus, SourcePointer


logger = get_logger(__name__)


class SearchOptions(BaseModel):
    """Filters and limits for a search call."""

    limit: int = Field(default=10, ge=1, le=100)
    min_similarity: float = Field(default=0.7, ge=-1.0, le=1.0)
    domain: str | None = None
    min_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    published_rules_only: bool = False
    as_of_date: date | None = None
    overfetch_factor: float = Field(default=2.0, ge=1.0, le=20.0)

    def fetch_size(self, extra: int = 0) -> int:
        return math.ceil((self.limit + extra) * self.overfetch_factor)

    def effective_date(self) -> date:
        return self.as_of_date or datetime.now(UTC).date()


class SearchHit(BaseModel):
    """A matched pointer and the rules that currently cite it."""

    pointer: SourcePointer
    similarity: float
    rules: list[RegulatoryRule] = Field(default_factory=list)


class SearchResult(BaseModel):
    hits: list[SearchHit] = Field(default_factory=list)
    as_of_date: date
    candidates_considered: int = 0


class HybridSearchResult(SearchResult):
    """Semantic hits plus concept slugs for a keyword-expansion pass."""

    concept_slugs: list[str] = Field(default_factory=list)


class SemanticSearchService:
    """Embeds queries and ranks source pointers by cosine similarity."""

    def __init__(self, store: VectorStore, embedder: EmbeddingProvider) -> None:
        self.store = store
        self.embedder = embedder

    def _rank(
        self,
        candidates: list[PointerCandidate],
        options: SearchOptions,
        exclude_id: str | None = None,
    ) -> list[PointerCandidate]:
        kept = [
            c
            for c in candidates
            if c.similarity >= options.min_similarity and c.pointer.id != exclude_id
        ]
        kept.sort(key=lambda c: c.similarity, reverse=True)
        return kept[: options.limit]

    async def _attach_rules(
        self,
        ranked: list[PointerCandidate],
        options: SearchOptions,
    ) -> list[SearchHit]:
        as_of = options.effective_date()
        rules_by_pointer: dict[str, list[RegulatoryRule]] = {}
        if ranked:
            rules_by_pointer = await self.store.effective_rules_for_pointers(
                [c.pointer.id for c in ranked],
                as_of,
                options.published_rules_only,
            )

        hits = []
        for candidate in ranked:
            rules = [
                rule
                for rule in rules_by_pointer.get(candidate.pointer.id, [])
                if rule.is_effective_on(as_of)
                and (not options.published_rules_only or rule.status == RuleStatus.PUBLISHED)
            ]
            hits.append(
                SearchHit(pointer=candidate.pointer, similarity=candidate.similarity, rules=rules)
            )
        return hits

    async def _search_by_embedding(
        self,
        embedding: list[float],
        options: SearchOptions,
        exclude_id: str | None = None,
    ) -> SearchResult:
        candidates = await self.store.nearest_pointers(
            embedding,
            k=options.fetch_size(extra=1 if exclude_id else 0),
            domain=options.domain,
            min_confidence=options.min_confidence,
        )
        ranked = self._rank(candidates, options, exclude_id)
        hits = await self._attach_rules(ranked, options)
        return SearchResult(
            hits=hits,
            as_of_date=options.effective_date(),
            candidates_considered=len(candidates),
        )

    async def semantic_search(
        self,
        query: str,
        options: SearchOptions | None = None,
    ) -> SearchResult:
        """
        Rank pointers by similarity to `query`.

        Hits are non-increasing in similarity and never below
        `min_similarity`; attached rules are effective on the as-of date.

        Raises:
            ValueError: empty query
            EmbeddingError: the embedding capability failed
        """
        if not query.strip():
            raise ValueError("Search query must not be empty")
        options = options or SearchOptions()

        embedding = await self.embedder.embed(query)
        result = await self._search_by_embedding(embedding, options)

        logger.info(
            "semantic_search_completed",
            query_chars=len(query),
            domain=options.domain,
            candidates=result.candidates_considered,
            hits=len(result.hits),
            limit=options.limit,
        )
        return result

    async def hybrid_search(
        self,
        query: str,
        options: SearchOptions | None = None,
    ) -> HybridSearchResult:
        """Semantic search plus the concept slugs referenced by matched rules."""
        result = await self.semantic_search(query, options)
        slugs = sorted({rule.concept_slug for hit in result.hits for rule in hit.rules})
        return HybridSearchResult(**result.model_dump(), concept_slugs=slugs)

    async def find_similar_pointers(
        self,
        pointer_id: str,
        options: SearchOptions | None = None,
    ) -> SearchResult:
        """
        Pointers similar to an existing pointer's quote and context.

        Raises:
            PointerNotFound: no live pointer with `pointer_id`
        """
        options = options or SearchOptions()
        pointer = await self.store.get_pointer(pointer_id)
        if pointer is None:
            raise PointerNotFound(pointer_id)

        embedding = await self.embedder.embed(pointer.embedding_text)
        result = await self._search_by_embedding(embedding, options, exclude_id=pointer_id)

        logger.info(
            "similar_pointers_found",
            pointer_id=pointer_id,
            candidates=result.candidates_considered,
            hits=len(result.hits),
        )
        return result
