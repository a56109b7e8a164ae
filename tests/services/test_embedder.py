"""
Tests for EmbeddingService.

This test module verifies:
1. Request shape and response parsing
2. Error mapping (missing credential, upstream status, malformed payload)
3. The single retry on transient failures
4. Cosine similarity

The HTTP API is replaced with an httpx.MockTransport.
"""

import json

import httpx
import numpy as np
import pytest

from tubeindex.core.exceptions import EmbeddingUnavailable, ProviderError
from tubeindex.services.processors.embedder import EmbeddingService, cosine_similarity


DIMENSION = 4


def embedding_payload(vectors, reverse=False):
    data = [
        {"object": "embedding", "index": i, "embedding": vector}
        for i, vector in enumerate(vectors)
    ]
    if reverse:
        data.reverse()
    return {"object": "list", "data": data, "model": "text-embedding-ada-002"}


def make_service(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("api_key", "sk-test")
    return EmbeddingService(
        dimension=DIMENSION,
        api_base="https://embeddings.test/v1/",
        retry_delay=0,
        client=client,
        **kwargs,
    )


@pytest.mark.asyncio
class TestEmbedText:
    """Test successful embedding requests."""

    async def test_single_text(self):
        """Test that one text produces one vector and a well-formed request."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=embedding_payload([[0.1, 0.2, 0.3, 0.4]]))

        service = make_service(handler, model_name="text-embedding-ada-002")
        embedding = await service.embed_text("What did they say about GPUs?")

        assert embedding == [0.1, 0.2, 0.3, 0.4]
        [request] = requests
        assert str(request.url) == "https://embeddings.test/v1/embeddings"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert json.loads(request.content) == {
            "model": "text-embedding-ada-002",
            "input": ["What did they say about GPUs?"],
        }

    async def test_batch_is_returned_in_input_order(self):
        """Test that response items are ordered by their index field."""
        vectors = [[1.0, 0, 0, 0], [0, 1.0, 0, 0], [0, 0, 1.0, 0]]

        def handler(request):
            return httpx.Response(200, json=embedding_payload(vectors, reverse=True))

        service = make_service(handler)
        result = await service.embed_texts_batch(["a", "b", "c"])

        assert result == vectors

    async def test_empty_batch_makes_no_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert await make_service(handler).embed_texts_batch([]) == []

    async def test_shutdown_closes_client(self):
        service = make_service(lambda r: httpx.Response(200, json=embedding_payload([])))
        await service.shutdown()
        assert service._client.is_closed


@pytest.mark.asyncio
class TestEmbedErrors:
    """Test error mapping."""

    async def test_missing_key_raises_embedding_unavailable(self):
        """Test that no request is sent without a credential."""
        def handler(request):
            raise AssertionError("no request expected")

        service = make_service(handler, api_key="")

        assert service.is_configured is False
        with pytest.raises(EmbeddingUnavailable):
            await service.embed_text("hello")

    @pytest.mark.parametrize("text", ["", "   "])
    async def test_empty_text_rejected(self, text):
        service = make_service(lambda r: httpx.Response(200, json=embedding_payload([])))
        with pytest.raises(ValueError):
            await service.embed_text(text)

    async def test_unauthorized_is_not_retried(self):
        """Test that a 401 surfaces as ProviderError carrying the status."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, json={"error": {"message": "Incorrect API key"}})

        service = make_service(handler)
        with pytest.raises(ProviderError) as exc_info:
            await service.embed_text("hello")

        assert exc_info.value.status_code == 401
        assert exc_info.value.provider == "openai"
        assert len(calls) == 1

    async def test_rate_limit_retried_once(self):
        """Test that a 429 is retried and the retry's result is returned."""
        responses = [
            httpx.Response(429, json={"error": {"message": "slow down"}}),
            httpx.Response(200, json=embedding_payload([[0.5, 0.5, 0.5, 0.5]])),
        ]

        def handler(request):
            return responses.pop(0)

        service = make_service(handler)
        assert await service.embed_text("hello") == [0.5, 0.5, 0.5, 0.5]
        assert responses == []

    async def test_server_error_fails_after_one_retry(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        service = make_service(handler)
        with pytest.raises(ProviderError) as exc_info:
            await service.embed_text("hello")

        assert exc_info.value.status_code == 503
        assert len(calls) == 2

    async def test_no_retry_when_disabled(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        service = make_service(handler)
        with pytest.raises(ProviderError):
            await service.embed_text("hello", retry_on_error=False)
        assert len(calls) == 1

    async def test_transport_error_is_provider_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        service = make_service(handler)
        with pytest.raises(ProviderError) as exc_info:
            await service.embed_text("hello")
        assert exc_info.value.status_code is None

    async def test_wrong_dimension_rejected(self):
        def handler(request):
            return httpx.Response(200, json=embedding_payload([[0.1, 0.2]]))

        service = make_service(handler)
        with pytest.raises(ProviderError, match="4-dim"):
            await service.embed_text("hello", retry_on_error=False)

    async def test_malformed_body_rejected(self):
        def handler(request):
            return httpx.Response(200, json={"unexpected": True})

        service = make_service(handler)
        with pytest.raises(ProviderError, match="malformed"):
            await service.embed_text("hello", retry_on_error=False)


class TestCosineSimilarity:
    """Test the cosine similarity helper."""

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_matches_numpy(self):
        a, b = [0.3, -0.2, 0.9], [0.1, 0.4, 0.5]
        expected = np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b))
        assert cosine_similarity(a, b) == pytest.approx(expected)
