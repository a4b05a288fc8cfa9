"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic meaning.
These vectors are stored alongside each chunk and compared at query time.

Three implementations of IEmbeddingProvider:
    1. GeminiEmbeddingProvider -- text-embedding-004 (768 dims), hosted.
       The default; requires GEMINI_API_KEY.
    2. OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims) or any
       OpenAI-compatible host.  Requires OPENAI_API_KEY.
    3. OllamaEmbeddingProvider -- nomic-embed-text (768 dims) via a local
       Ollama server.  Free, no key.
"""

from course_rag.providers.embedding.gemini_embedding_provider import GeminiEmbeddingProvider
from course_rag.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider
from course_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from course_rag.providers.embedding.registry import (
    EmbeddingProviderRegistry,
    build_embedding_registry,
)

__all__ = [
    "EmbeddingProviderRegistry",
    "GeminiEmbeddingProvider",
    "OllamaEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "build_embedding_registry",
]
