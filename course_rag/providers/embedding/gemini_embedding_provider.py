"""Google Gemini embedding provider adapter.

Calls the Generative Language REST API (``text-embedding-004``, 768
dimensions) over an injected ``httpx.AsyncClient``.  The API key is sent in
the ``x-goog-api-key`` header, never in the URL.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from course_rag.config.settings import Settings
from course_rag.interfaces.embedding_provider import IEmbeddingProvider
from course_rag.utils.errors import ProviderResponseInvalidError, ProviderUnavailableError

logger = structlog.get_logger(logger_name=__name__)

# batchEmbedContents accepts at most 100 requests per call.
_GEMINI_BATCH_LIMIT = 100

_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-004": 768,
    "embedding-001": 768,
}

# Statuses that mean "try again later" rather than "your request is wrong".
_TRANSIENT_STATUSES = frozenset({401, 403, 408, 429})


class GeminiEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by Google's ``text-embedding-004`` model.

    Single texts go through ``:embedContent``; batches go through
    ``:batchEmbedContents`` in groups of 100.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._api_key = settings.gemini_api_key
        self._base_url = settings.gemini_base_url.rstrip("/")
        self._model = settings.gemini_embedding_model
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 768)
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.embedding_request_timeout),
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts."""
        if not texts:
            return []
        if len(texts) == 1:
            return [await self.embed_single(texts[0])]

        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), _GEMINI_BATCH_LIMIT):
            batch = texts[start : start + _GEMINI_BATCH_LIMIT]
            data = await self._post(
                "batchEmbedContents",
                {"requests": [self._request_body(text) for text in batch]},
            )
            embeddings = data.get("embeddings")
            if not isinstance(embeddings, list) or len(embeddings) != len(batch):
                raise ProviderResponseInvalidError(
                    message=(
                        f"Expected {len(batch)} embeddings, got "
                        f"{len(embeddings) if isinstance(embeddings, list) else 'none'}"
                    ),
                    provider_name=self.get_provider_name(),
                )
            all_embeddings.extend(self._values(item) for item in embeddings)
            logger.info("gemini_embedding_batch", model=self._model, batch_size=len(batch))
        return all_embeddings

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
        data = await self._post("embedContent", self._request_body(text))
        return self._values(data.get("embedding"))

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "gemini"

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _request_body(self, text: str) -> dict[str, Any]:
        return {
            "model": f"models/{self._model}",
            "content": {"parts": [{"text": text}]},
        }

    async def _post(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST to ``models/{model}:{method}`` and return the decoded JSON body."""
        if not self._api_key:
            raise ProviderUnavailableError(
                message="GEMINI_API_KEY is not configured",
                provider_name=self.get_provider_name(),
            )

        url = f"{self._base_url}/models/{self._model}:{method}"
        try:
            response = await self._client.post(
                url,
                json=payload,
                headers={"x-goog-api-key": self._api_key},
            )
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(
                message=f"Gemini request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code in _TRANSIENT_STATUSES or response.status_code >= 500:
            raise ProviderUnavailableError(
                message=f"Gemini returned HTTP {response.status_code}",
                provider_name=self.get_provider_name(),
            )
        if response.status_code != 200:
            raise ProviderResponseInvalidError(
                message=f"Gemini rejected the request: HTTP {response.status_code} {response.text[:200]}",
                provider_name=self.get_provider_name(),
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderResponseInvalidError(
                message="Gemini returned a non-JSON body",
                provider_name=self.get_provider_name(),
            ) from exc
        if not isinstance(data, dict):
            raise ProviderResponseInvalidError(
                message="Gemini returned an unexpected payload",
                provider_name=self.get_provider_name(),
            )
        return data

    def _values(self, embedding: Any) -> list[float]:
        values = embedding.get("values") if isinstance(embedding, dict) else None
        if not isinstance(values, list) or not values:
            raise ProviderResponseInvalidError(
                message="Gemini response has no embedding values",
                provider_name=self.get_provider_name(),
            )
        return values
