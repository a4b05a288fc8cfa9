"""Provider-agnostic embedding with retry and vector validation.

:class:`EmbeddingService` is the single entry point the ingestion and
retrieval services use to turn text into a vector.  It resolves the named
provider, retries transient failures with exponential backoff, and checks
that whatever comes back is actually usable before anything gets stored or
compared.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

import structlog

from course_rag.utils.concurrency import retry_with_backoff
from course_rag.utils.errors import ProviderResponseInvalidError, ProviderUnavailableError

if TYPE_CHECKING:
    from course_rag.interfaces.embedding_provider import IEmbeddingProvider
    from course_rag.providers.embedding.registry import EmbeddingProviderRegistry

logger = structlog.get_logger(logger_name=__name__)


class EmbeddingService:
    """Embeds one text at a time through a registered provider.

    Parameters
    ----------
    registry:
        Name-to-provider lookup.
    default_provider:
        Provider used when a call does not name one.
    max_attempts:
        Total attempts per text when the provider is unavailable.
    retry_base_delay:
        Seconds before the first retry; doubles on each further attempt.
    """

    def __init__(
        self,
        registry: EmbeddingProviderRegistry,
        default_provider: str = "gemini",
        max_attempts: int = 3,
        retry_base_delay: float = 0.5,
    ) -> None:
        self._registry = registry
        self._default_provider = default_provider
        self._max_attempts = max_attempts
        self._retry_base_delay = retry_base_delay

    @property
    def default_provider(self) -> str:
        return self._default_provider

    def resolve(self, provider_name: str | None = None) -> IEmbeddingProvider:
        """Return the provider for *provider_name* (or the default).

        Raises
        ------
        ConfigurationError
            If the name is not registered.
        """
        return self._registry.get(provider_name or self._default_provider)

    async def embed(self, text: str, provider_name: str | None = None) -> list[float]:
        """Return the embedding of *text* from the named provider.

        Raises
        ------
        ConfigurationError
            Unknown provider name.
        ProviderUnavailableError
            Still unavailable after the last retry.
        ProviderResponseInvalidError
            The vector is empty, non-finite or of the wrong dimension.
        """
        provider = self.resolve(provider_name)
        return await self.embed_with(provider, text)

    async def embed_with(self, provider: IEmbeddingProvider, text: str) -> list[float]:
        """Embed *text* with an already-resolved *provider*."""
        name = provider.get_provider_name()
        vector = await retry_with_backoff(
            lambda: provider.embed_single(text),
            retry_on=ProviderUnavailableError,
            max_attempts=self._max_attempts,
            base_delay=self._retry_base_delay,
            logger=logger,
            provider=name,
        )
        self._validate_vector(vector, provider)
        return vector

    @staticmethod
    def _validate_vector(vector: object, provider: IEmbeddingProvider) -> None:
        name = provider.get_provider_name()
        if not isinstance(vector, list) or not vector:
            raise ProviderResponseInvalidError(
                message="Embedding is empty", provider_name=name
            )
        for value in vector:
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ProviderResponseInvalidError(
                    message=f"Embedding contains a non-finite or non-numeric value: {value!r}",
                    provider_name=name,
                )
        expected = provider.get_dimension()
        if len(vector) != expected:
            raise ProviderResponseInvalidError(
                message=f"Embedding has {len(vector)} dimensions, expected {expected}",
                provider_name=name,
            )
