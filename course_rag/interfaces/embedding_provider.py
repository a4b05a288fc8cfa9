"""Abstract base class for text-embedding service providers.

Defines the contract for generating embedding vectors from text.
Implementations wrap Google ``text-embedding-004`` (hosted), any
OpenAI-compatible embeddings endpoint, or ``nomic-embed-text`` served
locally by Ollama.  Providers are interchangeable: the ingestion and
retrieval services only ever see this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   GeminiEmbeddingProvider  -- text-embedding-004 over REST (requires API key)
#   OpenAIEmbeddingProvider  -- text-embedding-3-small or compatible host
#   OllamaEmbeddingProvider  -- nomic-embed-text via a local Ollama server
# Located in: course_rag/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the RAG pipeline.

    Vectors produced here are persisted by
    :class:`~course_rag.interfaces.chunk_store.IChunkStore` at ingestion time
    and compared against query vectors at retrieval time.  Vectors from two
    different providers are never comparable.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.

        Raises
        ------
        course_rag.utils.errors.ProviderUnavailableError
            Network failure, authentication failure, rate limit or 5xx.
        course_rag.utils.errors.ProviderResponseInvalidError
            The provider answered but the payload is not a usable vector.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string.

        Convenience wrapper around :meth:`embed` for the common single-text
        case (one chunk, one query).
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Constant for the lifetime of the provider instance.  Example values:
        ``768`` (``text-embedding-004``, ``nomic-embed-text``), ``1536``
        (``text-embedding-3-small``).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the identifier stored with every vector this provider makes.

        Example return values: ``"gemini"``, ``"openai"``, ``"ollama"``.
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and reachable.

        Implementations check credentials (and, for local servers,
        reachability) without generating an actual embedding.
        """
