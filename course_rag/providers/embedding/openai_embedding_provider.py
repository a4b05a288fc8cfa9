"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports both real OpenAI and OpenAI-compatible providers (TogetherAI,
Fireworks) via custom ``base_url`` and model name settings.
"""

from __future__ import annotations

import openai
import structlog

from course_rag.config.settings import Settings
from course_rag.interfaces.embedding_provider import IEmbeddingProvider
from course_rag.utils.errors import ProviderResponseInvalidError, ProviderUnavailableError

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

# Known embedding model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
}

# Errors after which the same request may succeed later.
_TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.InternalServerError,
)


async def create_embeddings(
    client: openai.AsyncOpenAI,
    model: str,
    texts: list[str],
    provider_name: str,
    batch_limit: int = _OPENAI_BATCH_LIMIT,
) -> list[list[float]]:
    """Embed *texts* through an OpenAI-style ``/embeddings`` endpoint.

    Shared by every provider that speaks the OpenAI wire format.  Splits the
    input into batches of *batch_limit* and maps SDK errors onto the
    provider error taxonomy.
    """
    all_embeddings: list[list[float]] = []
    try:
        for start in range(0, len(texts), batch_limit):
            batch = texts[start : start + batch_limit]
            response = await client.embeddings.create(input=batch, model=model)
            if len(response.data) != len(batch):
                raise ProviderResponseInvalidError(
                    message=f"Expected {len(batch)} embeddings, got {len(response.data)}",
                    provider_name=provider_name,
                )
            all_embeddings.extend(item.embedding for item in response.data)
            logger.info(
                "openai_embedding_batch",
                model=model,
                provider=provider_name,
                batch_size=len(batch),
                tokens=response.usage.total_tokens if response.usage else None,
            )
    except _TRANSIENT_ERRORS as exc:
        raise ProviderUnavailableError(
            message=f"{provider_name} embedding API unavailable: {exc}",
            provider_name=provider_name,
        ) from exc
    except openai.APIError as exc:
        raise ProviderResponseInvalidError(
            message=f"{provider_name} embedding API error: {exc}",
            provider_name=provider_name,
        ) from exc
    return all_embeddings


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-small`` (1536 dims) by default.  When
    ``openai_base_url`` is configured the client points at that URL and
    uses ``openai_embedding_model`` if set.
    """

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": settings.embedding_request_timeout,
            # Retries are owned by EmbeddingService.
            "max_retries": 0,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 768)

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors, batching at 2048 texts per call."""
        if not texts:
            return []
        return await create_embeddings(self._client, self._model, texts, self.get_provider_name())

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "openai"

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)
