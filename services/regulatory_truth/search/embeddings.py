"""
Embeddings Module
=================

Embedding capability used by semantic search.

Providers:
- OpenAI (text-embedding-3-*)
- Ollama (local models, e.g. nomic-embed-text)

Connection failures and timeouts are retried with exponential backoff.
Anything the provider cannot recover from surfaces as `EmbeddingError`.

Version: 0.1.0
"""

from abc import ABC, abstractmethod
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from services.regulatory_truth.errors import EmbeddingError
from shared.config import EmbeddingProviderName, settings
from shared.config.settings import EmbeddingSettings
from shared.logging import get_logger


logger = get_logger(__name__)

_RETRYABLE = (httpx.ConnectError, httpx.TimeoutException)


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    def __init__(self, max_text_chars: int = 1000) -> None:
        self.max_text_chars = max_text_chars

    @property
    @abstractmethod
    def provider_name(self) -> EmbeddingProviderName:
        """Provider identifier."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier."""
        ...

    @abstractmethod
    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Provider call for already-truncated texts."""
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for multiple texts.

        Raises:
            EmbeddingError: provider failure or malformed response
        """
        if not texts:
            return []

        processed = [text[: self.max_text_chars] for text in texts]
        try:
            embeddings = await self._embed_texts(processed)
        except httpx.HTTPError as e:
            logger.error(
                "embedding_request_failed",
                provider=self.provider_name.value,
                model=self.model_name,
                error=str(e),
            )
            raise EmbeddingError(f"{self.provider_name.value} embedding failed: {e}") from e

        if len(embeddings) != len(texts) or any(not vector for vector in embeddings):
            raise EmbeddingError(
                f"{self.provider_name.value} returned {len(embeddings)} embeddings "
                f"for {len(texts)} texts"
            )
        return embeddings

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        embeddings = await self.embed_batch([text])
        return embeddings[0]

    async def close(self) -> None:
        """Release provider resources."""


class OpenAIEmbeddings(EmbeddingProvider):
    """
    OpenAI embeddings provider.

    Uses text-embedding-3-small or text-embedding-3-large.
    """

    MODELS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        timeout: float = 30.0,
        max_text_chars: int = 1000,
    ) -> None:
        """
        Initialize OpenAI embeddings.

        Args:
            api_key: OpenAI API key
            model: Model to use
            timeout: Request timeout in seconds
            max_text_chars: Texts are truncated to this length
        """
        super().__init__(max_text_chars)
        if not api_key:
            raise ValueError("OpenAI API key required for embeddings")

        self._model = model
        self._client = httpx.AsyncClient(
            base_url="https://api.openai.com/v1",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout),
        )

    @property
    def provider_name(self) -> EmbeddingProviderName:
        return EmbeddingProviderName.OPENAI

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self.MODELS.get(self._model, 1536)

    @retry(
        retry=retry_if_exception_type(_RETRYABLE),
        stop=stop_after_attempt(settings.embedding.max_retries),
        wait=wait_exponential(multiplier=1, min=1, max=20),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "openai_embedding_retry",
            attempt=retry_state.attempt_number,
        ),
    )
    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        response = await self._client.post(
            "/embeddings",
            json={"model": self._model, "input": texts},
        )
        response.raise_for_status()

        data: dict[str, Any] = response.json()
        # Responses carry an index per input; do not rely on list order
        items = sorted(data["data"], key=lambda item: item["index"])
        embeddings = [item["embedding"] for item in items]

        logger.debug("openai_embeddings_generated", count=len(embeddings), model=self._model)
        return embeddings

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


class OllamaEmbeddings(EmbeddingProvider):
    """
    Ollama embeddings provider.

    Runs against a local or self-hosted Ollama server.
    """

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        timeout: float = 30.0,
        max_text_chars: int = 1000,
    ) -> None:
        super().__init__(max_text_chars)
        self._host = host.rstrip("/")
        self._model = model
        self._client = httpx.AsyncClient(base_url=self._host, timeout=httpx.Timeout(timeout))

        logger.debug("ollama_embeddings_initialized", host=self._host, model=self._model)

    @property
    def provider_name(self) -> EmbeddingProviderName:
        return EmbeddingProviderName.OLLAMA

    @property
    def model_name(self) -> str:
        return self._model

    @retry(
        retry=retry_if_exception_type(_RETRYABLE),
        stop=stop_after_attempt(settings.embedding.max_retries),
        wait=wait_exponential(multiplier=1, min=1, max=20),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "ollama_embedding_retry",
            attempt=retry_state.attempt_number,
        ),
    )
    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        response = await self._client.post(
            "/api/embed",
            json={"model": self._model, "input": texts},
        )
        response.raise_for_status()

        data: dict[str, Any] = response.json()
        embeddings = data.get("embeddings") or []

        logger.debug("ollama_embeddings_generated", count=len(embeddings), model=self._model)
        return embeddings

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


def create_embedding_provider(config: EmbeddingSettings | None = None) -> EmbeddingProvider:
    """
    Build the configured embedding provider.

    Raises:
        ValueError: OpenAI selected without an API key
    """
    config = config or settings.embedding

    if config.provider == EmbeddingProviderName.OPENAI:
        return OpenAIEmbeddings(
            api_key=config.api_key.get_secret_value(),
            model=config.model,
            timeout=config.timeout_seconds,
            max_text_chars=config.max_text_chars,
        )

    return OllamaEmbeddings(
        host=config.ollama_host,
        model=config.model,
        timeout=config.timeout_seconds,
        max_text_chars=config.max_text_chars,
    )
