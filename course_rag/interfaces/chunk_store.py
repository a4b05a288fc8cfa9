"""Abstract base class for the document/vector store.

Defines the contract for persisting documents and their embedded chunks and
for similarity search over the stored vectors.  Implementations wrap
Supabase (Postgres + pgvector, the hosted deployment) or a local ChromaDB
collection paired with a SQLite document registry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from course_rag.models.rag import (
    CourseDocument,
    DocumentChunk,
    RetrievalFilters,
    RetrievedChunk,
)


# Concrete implementations (course_rag/providers/store/):
#   SupabaseChunkStore  -- tables materials/chunks, RPC match_chunks
#   ChromaDBChunkStore  -- cosine collection + aiosqlite documents table
class IChunkStore(ABC):
    """Contract for the storage collaborator of the RAG pipeline.

    All methods that touch the backend are async.  Every backend failure is
    raised as :class:`~course_rag.utils.errors.StorageError`; the services
    decide whether that is fatal (document creation), counted (chunk
    records) or degraded to an empty result (similarity search).

    **Filters** passed to :meth:`similarity_search` restrict on equality of
    ``course``, ``topic``, ``week_number``, ``document_id`` and
    ``embedding_provider``.  Unset fields do not restrict.
    """

    @abstractmethod
    async def create_document(self, document: CourseDocument) -> str:
        """Persist the document record and return its identifier.

        Raises
        ------
        course_rag.utils.errors.StorageError
            If the record could not be written.
        """

    @abstractmethod
    async def create_chunk_record(
        self,
        document_id: str,
        chunk: DocumentChunk,
        embedding: list[float],
    ) -> str:
        """Persist one chunk with its vector and metadata.

        Parameters
        ----------
        document_id:
            Identifier returned by :meth:`create_document`.
        chunk:
            The chunk to store.  Its ``document_id`` may still be ``None``.
        embedding:
            The chunk's vector, produced by the provider named in
            ``chunk.metadata.embedding_provider``.

        Returns
        -------
        str
            The identifier of the stored chunk record.
        """

    @abstractmethod
    async def similarity_search(
        self,
        query_embedding: list[float],
        top_k: int,
        threshold: float,
        filters: RetrievalFilters | None = None,
    ) -> list[RetrievedChunk]:
        """Return up to *top_k* stored chunks scoring at least *threshold*.

        Results are ordered by descending similarity score.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier for this store, e.g. ``"supabase"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is configured."""
