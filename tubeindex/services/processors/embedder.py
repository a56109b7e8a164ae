"""
Embedding Service

This module provides text embeddings from the OpenAI embeddings API.
The same service embeds transcript chunks at indexing time and queries
at search time, so both live in one vector space.

Model: text-embedding-ada-002
- 1536 dimensions
- Accessed over HTTPS with httpx, no local model

Features:
---------
- Async HTTP client with a configurable timeout
- One retry on transport errors, rate limits and 5xx responses
- Explicit errors: EmbeddingUnavailable (no credential) and
  ProviderError (non-success upstream status)
- Dimension check on every response
"""

import asyncio
import logging
from typing import Optional

import httpx
import numpy as np

from tubeindex.core.config import settings
from tubeindex.core.exceptions import EmbeddingUnavailable, ProviderError


logger = logging.getLogger(__name__)

PROVIDER = "openai"

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class EmbeddingService:
    """
    Client for a remote text-embedding endpoint.

    Usage:
    ------
    embedder = EmbeddingService()

    embedding = await embedder.embed_text("What did they say about GPUs?")
    embeddings = await embedder.embed_texts_batch(["Text 1", "Text 2"])

    await embedder.shutdown()
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        api_base: Optional[str] = None,
        dimension: Optional[int] = None,
        timeout: Optional[float] = None,
        retry_delay: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the embedding service.

        Args:
            api_key: Provider credential (default from settings)
            model_name: Embedding model (default from settings)
            api_base: API base URL (default from settings)
            dimension: Expected vector length (default from settings)
            timeout: Request timeout in seconds (default from settings)
            retry_delay: Seconds to wait before the single retry
            client: Pre-built httpx client (tests inject a MockTransport)
        """
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model_name = model_name or settings.EMBEDDING_MODEL
        self.api_base = (api_base or settings.EMBEDDING_API_BASE).rstrip("/")
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.retry_delay = retry_delay

        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.EMBEDDING_REQUEST_TIMEOUT,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def ensure_configured(self) -> None:
        """
        Raises:
            EmbeddingUnavailable: If no provider credential is configured
        """
        if not self.is_configured:
            raise EmbeddingUnavailable(
                "OpenAI API key not found. Set OPENAI_API_KEY to enable embeddings."
            )

    def get_embedding_dimension(self) -> int:
        return self.dimension

    async def embed_text(self, text: str, retry_on_error: bool = True) -> list[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text to embed
            retry_on_error: Whether to retry once on a transient failure

        Returns:
            Embedding vector as list of floats

        Raises:
            EmbeddingUnavailable: If no credential is configured
            ProviderError: If the upstream call fails
            ValueError: If text is empty
        """
        embeddings = await self.embed_texts_batch([text], retry_on_error=retry_on_error)
        return embeddings[0]

    async def embed_texts_batch(
        self,
        texts: list[str],
        retry_on_error: bool = True,
    ) -> list[list[float]]:
        """
        Generate embeddings for multiple texts in one request.

        Returns:
            Embedding vectors in input order
        """
        self.ensure_configured()

        if not texts:
            return []
        if any(not t or not t.strip() for t in texts):
            raise ValueError("Cannot embed empty text")

        try:
            return await self._request(texts)
        except ProviderError as e:
            retryable = e.status_code is None or e.status_code in _RETRYABLE_STATUS
            if not (retry_on_error and retryable):
                raise
            logger.info(f"Retrying embedding request after error: {e}")
            await asyncio.sleep(self.retry_delay)
            return await self._request(texts)

    async def _request(self, texts: list[str]) -> list[list[float]]:
        try:
            response = await self._client.post(
                f"{self.api_base}/embeddings",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={"model": self.model_name, "input": texts},
            )
        except httpx.HTTPError as e:
            logger.error(f"Embedding request failed: {e}")
            raise ProviderError(PROVIDER, f"request failed: {e}") from e

        if response.is_error:
            logger.error(
                f"Embedding API returned {response.status_code}: {response.text[:200]}"
            )
            raise ProviderError(
                PROVIDER,
                response.reason_phrase or "embedding request rejected",
                status_code=response.status_code,
            )

        try:
            data = sorted(response.json()["data"], key=lambda item: item.get("index", 0))
            embeddings = [item["embedding"] for item in data]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError(PROVIDER, f"malformed response: {e}", response.status_code) from e

        if len(embeddings) != len(texts):
            raise ProviderError(
                PROVIDER,
                f"expected {len(texts)} embeddings, got {len(embeddings)}",
                response.status_code,
            )
        for embedding in embeddings:
            if len(embedding) != self.dimension:
                raise ProviderError(
                    PROVIDER,
                    f"expected {self.dimension}-dim embedding, got {len(embedding)}",
                    response.status_code,
                )

        return embeddings

    async def shutdown(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
        logger.info("Embedding service shut down")


def cosine_similarity(embedding1: list[float], embedding2: list[float]) -> float:
    """
    Compute cosine similarity between two embeddings.

    Returns:
        Similarity in [-1, 1]; 0.0 when either vector has zero norm
    """
    emb1 = np.asarray(embedding1, dtype=float)
    emb2 = np.asarray(embedding2, dtype=float)

    norm1 = np.linalg.norm(emb1)
    norm2 = np.linalg.norm(emb2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    return float(np.dot(emb1, emb2) / (norm1 * norm2))
