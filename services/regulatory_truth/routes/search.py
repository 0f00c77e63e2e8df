"""
Search Routes
=============

Semantic and hybrid search over source pointers.

Version: 0.1.0
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from services.regulatory_truth.dependencies import get_search_service
from services.regulatory_truth.errors import EmbeddingError, PointerNotFound
from services.regulatory_truth.search import (
    HybridSearchResult,
    SearchOptions,
    SearchResult,
    SemanticSearchService,
)
from shared.config import settings
from shared.logging import get_logger


logger = get_logger(__name__)

router = APIRouter()


class SearchRequest(BaseModel):
    """Search query and filters."""

    query: str = Field(..., min_length=1, max_length=2000)
    limit: int = Field(default=settings.search.default_limit, ge=1, le=100)
    min_similarity: float = Field(default=settings.search.default_min_similarity, ge=-1.0, le=1.0)
    domain: str | None = None
    min_confidence: float = Field(default=settings.search.default_min_confidence, ge=0.0, le=1.0)
    published_rules_only: bool = False
    as_of_date: date | None = None

    def to_options(self) -> SearchOptions:
        return SearchOptions(
            limit=self.limit,
            min_similarity=self.min_similarity,
            domain=self.domain,
            min_confidence=self.min_confidence,
            published_rules_only=self.published_rules_only,
            as_of_date=self.as_of_date,
            overfetch_factor=settings.search.overfetch_factor,
        )


def _embedding_unavailable(e: EmbeddingError) -> HTTPException:
    logger.error("search_embedding_failed", error=str(e))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Embedding service unavailable",
    )


@router.post("/semantic", response_model=SearchResult)
async def semantic_search(
    request: SearchRequest,
    service: SemanticSearchService = Depends(get_search_service),
) -> SearchResult:
    """Rank source pointers by similarity to the query."""
    if not request.query.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Search query must not be empty",
        )
    try:
        return await service.semantic_search(request.query, request.to_options())
    except EmbeddingError as e:
        raise _embedding_unavailable(e) from e


@router.post("/hybrid", response_model=HybridSearchResult)
async def hybrid_search(
    request: SearchRequest,
    service: SemanticSearchService = Depends(get_search_service),
) -> HybridSearchResult:
    """Semantic search plus the concept slugs of matched rules."""
    if not request.query.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Search query must not be empty",
        )
    try:
        return await service.hybrid_search(request.query, request.to_options())
    except EmbeddingError as e:
        raise _embedding_unavailable(e) from e


@router.get("/pointers/{pointer_id}/similar", response_model=SearchResult)
async def similar_pointers(
    pointer_id: str,
    limit: int = Query(default=settings.search.default_limit, ge=1, le=100),
    min_similarity: float = Query(default=settings.search.default_min_similarity, ge=-1.0, le=1.0),
    domain: str | None = Query(default=None),
    service: SemanticSearchService = Depends(get_search_service),
) -> SearchResult:
    """Pointers whose quote and context resemble an existing pointer."""
    options = SearchOptions(
        limit=limit,
        min_similarity=min_similarity,
        domain=domain,
        overfetch_factor=settings.search.overfetch_factor,
    )
    try:
        return await service.find_similar_pointers(pointer_id, options)
    except PointerNotFound as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Source pointer {pointer_id} not found",
        ) from e
    except EmbeddingError as e:
        raise _embedding_unavailable(e) from e
