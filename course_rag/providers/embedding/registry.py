"""Name-to-provider lookup for embedding providers.

Ingestion and retrieval calls name the embedding provider they want
(``"gemini"``, ``"openai"``, ``"ollama"``); the registry turns that name
into a configured :class:`IEmbeddingProvider` exactly once per call.
"""

from __future__ import annotations

import httpx
import structlog

from course_rag.config.settings import Settings
from course_rag.interfaces.embedding_provider import IEmbeddingProvider
from course_rag.providers.embedding.gemini_embedding_provider import GeminiEmbeddingProvider
from course_rag.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider
from course_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from course_rag.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)


class EmbeddingProviderRegistry:
    """Holds the embedding providers available to this process."""

    def __init__(self, providers: list[IEmbeddingProvider] | None = None) -> None:
        self._providers: dict[str, IEmbeddingProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: IEmbeddingProvider) -> None:
        """Add *provider* under its own name, replacing any previous entry."""
        self._providers[provider.get_provider_name()] = provider

    def get(self, name: str) -> IEmbeddingProvider:
        """Return the provider registered as *name*.

        Raises
        ------
        ConfigurationError
            If no provider with that name is registered.
        """
        provider = self._providers.get(name)
        if provider is None:
            known = ", ".join(sorted(self._providers)) or "none"
            raise ConfigurationError(
                message=f"Unknown embedding provider {name!r} (configured: {known})",
                provider_name=name,
            )
        return provider

    def names(self) -> list[str]:
        return sorted(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)


def build_embedding_registry(
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
) -> EmbeddingProviderRegistry:
    """Register every embedding provider whose credentials are configured.

    Gemini needs ``GEMINI_API_KEY``, OpenAI needs ``OPENAI_API_KEY``, Ollama
    needs only ``OLLAMA_BASE_URL`` (set by default).  Reachability is not
    checked here; an unreachable provider fails at call time with
    :class:`~course_rag.utils.errors.ProviderUnavailableError`.
    """
    registry = EmbeddingProviderRegistry()
    configured = settings.get_configured_embedding_providers()

    if "gemini" in configured:
        registry.register(GeminiEmbeddingProvider(settings=settings, http_client=http_client))
    if "openai" in configured:
        registry.register(OpenAIEmbeddingProvider(settings=settings))
    if "ollama" in configured:
        registry.register(OllamaEmbeddingProvider(settings=settings))

    logger.info("embedding_registry_built", providers=registry.names())
    return registry
