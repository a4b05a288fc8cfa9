"""Supabase (Postgres + pgvector) chunk store adapter.

Documents go to the ``materials`` table, chunks to the ``chunks`` table
(``vector`` column ``embedding``), and similarity search runs through the
``match_chunks`` Postgres function called over PostgREST RPC.

The function is expected to accept::

    match_chunks(
        query_embedding      vector,
        match_count          int,
        similarity_threshold float,
        filter_course        text default null,
        filter_topic         text default null,
        filter_week          int  default null,
        filter_material_id   uuid default null,
        filter_provider      text default null
    )

and return rows with ``id``, ``material_id``, ``chunk_index``, ``content``,
``file_metadata``, ``char_position``, ``char_end`` and ``similarity``,
ordered by similarity descending.

An older three-argument ``match_chunks(query_embedding, match_count,
similarity_threshold)`` must be replaced by the signature above before
retrieval works: the provider filter is always sent, and PostgREST rejects
unknown arguments.  Rows whose ``file_metadata`` does not validate as
:class:`ChunkMetadata` (no ``document_title`` or ``embedding_provider``)
are skipped with a warning rather than failing the search.

``supabase-py`` is synchronous; every call runs through ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from supabase import Client, create_client

from course_rag.config.settings import Settings
from course_rag.interfaces.chunk_store import IChunkStore
from course_rag.models.rag import (
    ChunkMetadata,
    CourseDocument,
    DocumentChunk,
    RetrievalFilters,
    RetrievedChunk,
)
from course_rag.utils.errors import ConfigurationError, StorageError

logger = structlog.get_logger(logger_name=__name__)

# RetrievalFilters field -> match_chunks parameter name.
_RPC_FILTER_PARAMS = {
    "course": "filter_course",
    "topic": "filter_topic",
    "week_number": "filter_week",
    "document_id": "filter_material_id",
    "embedding_provider": "filter_provider",
}


class SupabaseChunkStore(IChunkStore):
    """Chunk store backed by a Supabase project.

    Parameters
    ----------
    client:
        A ``supabase.Client`` (injected for testability).
    documents_table, chunks_table, match_function:
        Table and RPC names; default to the deployed schema.
    """

    def __init__(
        self,
        client: Client,
        documents_table: str = "materials",
        chunks_table: str = "chunks",
        match_function: str = "match_chunks",
    ) -> None:
        self._db = client
        self._documents_table = documents_table
        self._chunks_table = chunks_table
        self._match_function = match_function

    @classmethod
    def from_settings(cls, settings: Settings) -> SupabaseChunkStore:
        """Create a client from ``SUPABASE_URL`` / ``SUPABASE_KEY``.

        Raises
        ------
        ConfigurationError
            If either value is missing.
        """
        if not settings.supabase_url or not settings.supabase_key:
            raise ConfigurationError(
                message="SUPABASE_URL and SUPABASE_KEY must be set for the supabase store",
                provider_name="supabase",
            )
        return cls(
            client=create_client(settings.supabase_url, settings.supabase_key),
            documents_table=settings.supabase_documents_table,
            chunks_table=settings.supabase_chunks_table,
            match_function=settings.supabase_match_function,
        )

    # ------------------------------------------------------------------
    # IChunkStore implementation
    # ------------------------------------------------------------------

    async def create_document(self, document: CourseDocument) -> str:
        meta = document.metadata
        row = {
            "title": meta.title,
            "course": meta.course,
            "topic": meta.topic,
            "week_number": meta.week_number,
            "tags": meta.tags,
            "content_text": document.text,
            "file_url": meta.storage_uri,
        }
        data = await self._execute(
            lambda: self._db.table(self._documents_table).insert(row).execute(),
            stage="create_document",
        )
        if not data:
            raise StorageError(
                message=f"Insert into {self._documents_table} returned no row",
                provider_name=self.get_provider_name(),
                stage="create_document",
            )
        document_id = str(data[0]["id"])
        logger.info("supabase_document_created", document_id=document_id, title=meta.title)
        return document_id

    async def create_chunk_record(
        self,
        document_id: str,
        chunk: DocumentChunk,
        embedding: list[float],
    ) -> str:
        row = {
            "material_id": document_id,
            "chunk_index": chunk.chunk_index,
            "content": chunk.content,
            "embedding": embedding,
            "file_metadata": chunk.metadata.model_dump(mode="json"),
            "char_position": chunk.start_char,
            "char_end": chunk.end_char,
            "created_at": chunk.metadata.created_at.isoformat(),
        }
        data = await self._execute(
            lambda: self._db.table(self._chunks_table).insert(row).execute(),
            stage="persist_chunk",
        )
        if not data:
            raise StorageError(
                message=f"Insert into {self._chunks_table} returned no row",
                provider_name=self.get_provider_name(),
                stage="persist_chunk",
            )
        return str(data[0]["id"])

    async def similarity_search(
        self,
        query_embedding: list[float],
        top_k: int,
        threshold: float,
        filters: RetrievalFilters | None = None,
    ) -> list[RetrievedChunk]:
        params: dict[str, Any] = {
            "query_embedding": query_embedding,
            "match_count": top_k,
            "similarity_threshold": threshold,
        }
        if filters is not None:
            for field, param in _RPC_FILTER_PARAMS.items():
                value = getattr(filters, field)
                if value is not None:
                    params[param] = value

        rows = await self._execute(
            lambda: self._db.rpc(self._match_function, params).execute(),
            stage="similarity_search",
        )

        results: list[RetrievedChunk] = []
        for row in rows or []:
            try:
                results.append(self._row_to_result(row))
            except (KeyError, TypeError, ValueError) as exc:
                # Rows written before file_metadata carried a title and provider.
                logger.warning(
                    "supabase_row_skipped",
                    function=self._match_function,
                    row_id=row.get("id") if isinstance(row, dict) else None,
                    error=str(exc),
                )

        provider = filters.embedding_provider if filters is not None else None
        if provider is not None:
            results = [rc for rc in results if rc.chunk.metadata.embedding_provider == provider]

        results.sort(key=lambda rc: rc.similarity_score, reverse=True)
        logger.info(
            "supabase_match_chunks",
            results_count=len(results),
            top_score=results[0].similarity_score if results else None,
        )
        return results

    def get_provider_name(self) -> str:
        return "supabase"

    def is_available(self) -> bool:
        return self._db is not None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _execute(self, call: Any, stage: str) -> Any:
        """Run a blocking supabase call in a thread, wrapping failures."""
        try:
            response = await asyncio.to_thread(call)
        except Exception as exc:
            logger.error("supabase_call_failed", stage=stage, error=str(exc))
            raise StorageError(
                message=f"Supabase {stage} failed: {exc}",
                provider_name=self.get_provider_name(),
                stage=stage,
            ) from exc
        return response.data

    @staticmethod
    def _row_to_result(row: dict[str, Any]) -> RetrievedChunk:
        content = row["content"]
        start = int(row.get("char_position") or 0)
        end = int(row.get("char_end") or start + len(content))
        similarity = max(-1.0, min(1.0, float(row["similarity"])))
        return RetrievedChunk(
            chunk=DocumentChunk(
                document_id=str(row["material_id"]),
                chunk_index=int(row["chunk_index"]),
                content=content,
                start_char=start,
                end_char=end,
                metadata=ChunkMetadata.model_validate(row.get("file_metadata") or {}),
            ),
            similarity_score=similarity,
            record_id=str(row["id"]) if row.get("id") is not None else None,
        )
