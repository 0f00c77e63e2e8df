"""
Semantic Search
===============

pgvector similarity search over source pointers with temporal rule filtering.
"""

from services.regulatory_truth.search.embeddings import (
    EmbeddingProvider,
    OllamaEmbeddings,
    OpenAIEmbeddings,
    create_embedding_provider,
)
from services.regulatory_truth.search.semantic import (
    HybridSearchResult,
    SearchHit,
    SearchOptions,
    SearchResult,
    SemanticSearchService,
)
from services.regulatory_truth.search.store import (
    PgVectorStore,
    PointerCandidate,
    VectorStore,
    to_vector_literal,
)

__all__ = [
    "EmbeddingProvider",
    "HybridSearchResult",
    "OllamaEmbeddings",
    "OpenAIEmbeddings",
    "PgVectorStore",
    "PointerCandidate",
    "SearchHit",
    "SearchOptions",
    "SearchResult",
    "SemanticSearchService",
    "VectorStore",
    "create_embedding_provider",
    "to_vector_literal",
]
