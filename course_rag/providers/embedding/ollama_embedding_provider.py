"""Ollama embedding provider adapter (local/free).

Wraps the Ollama OpenAI-compatible endpoint to implement
:class:`IEmbeddingProvider` using ``nomic-embed-text`` (768 dimensions).
Runs locally with no API key required.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from course_rag.config.settings import Settings
from course_rag.interfaces.embedding_provider import IEmbeddingProvider
from course_rag.providers.embedding.openai_embedding_provider import create_embeddings

logger = structlog.get_logger(logger_name=__name__)

_OLLAMA_BATCH_LIMIT = 512

_MODEL_DIMENSIONS: dict[str, int] = {
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
}


class OllamaEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by a model served via Ollama.

    Communicates through the OpenAI-compatible ``/v1`` endpoint that Ollama
    exposes.  Handles automatic batching for inputs exceeding 512 texts per
    call.
    """

    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            api_key="ollama",  # Ollama doesn't require a real key
            timeout=settings.embedding_request_timeout,
            max_retries=0,
        )
        self._model = settings.ollama_embedding_model
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 768)

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors, batching at 512 texts per call."""
        if not texts:
            return []
        return await create_embeddings(
            self._client,
            self._model,
            texts,
            self.get_provider_name(),
            batch_limit=_OLLAMA_BATCH_LIMIT,
        )

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        """Return the model's dimension (768 for nomic-embed-text)."""
        return self._dimension

    def get_provider_name(self) -> str:
        return "ollama"

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server is reachable."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
            return response.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
