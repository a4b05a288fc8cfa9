"""Public interface definitions for the external collaborators.

The pipeline talks to embedding services and to the document/vector store
only through the abstract base classes defined here.  Concrete adapters
live in ``course_rag/providers/`` and are wired together in
``course_rag/main.py``; unit tests inject in-memory fakes instead.

    Interface           ->  Concrete implementations
    IEmbeddingProvider  ->  GeminiEmbeddingProvider, OpenAIEmbeddingProvider,
                            OllamaEmbeddingProvider
    IChunkStore         ->  SupabaseChunkStore, ChromaDBChunkStore
"""

from course_rag.interfaces.chunk_store import IChunkStore
from course_rag.interfaces.embedding_provider import IEmbeddingProvider

__all__ = ["IChunkStore", "IEmbeddingProvider"]
