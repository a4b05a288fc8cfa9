"""Orchestrator for course document ingestion.

Pipeline stages: **validate -> create document -> chunk -> embed -> store**.

The :class:`IngestionService` coordinates four collaborators (chunker,
embedding service, provider registry via the embedding service, chunk
store) without any of them knowing about each other:

    1. Validation -- blank text and unknown providers fail before any write
    2. IChunkStore.create_document -- the document record; failure aborts
    3. TextChunker -- sentence-aware overlapping windows
    4. EmbeddingService -- one vector per chunk, retried when transient
    5. IChunkStore.create_chunk_record -- one record per chunk

Steps 4 and 5 run concurrently across chunks, bounded per call.  A chunk
that fails is logged and counted; it never aborts its siblings, and chunks
already stored are never rolled back.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from course_rag.models.rag import (
    ChunkMetadata,
    ChunkOutcome,
    CourseDocument,
    DocumentChunk,
    ErrorDetail,
    IngestionResult,
)
from course_rag.services.ingestion.chunker import TextChunker
from course_rag.utils.concurrency import throttled_gather
from course_rag.utils.errors import (
    IngestionAbortedError,
    OperationTimeoutError,
    ValidationError,
)

if TYPE_CHECKING:
    from course_rag.config.rag_config import RAGConfig
    from course_rag.interfaces.chunk_store import IChunkStore
    from course_rag.interfaces.embedding_provider import IEmbeddingProvider
    from course_rag.services.embedding_service import EmbeddingService

logger = structlog.get_logger(logger_name=__name__)


class _IngestionRun:
    """Mutable progress of one ``ingest`` call, readable after a timeout."""

    def __init__(self, document: CourseDocument, provider_name: str) -> None:
        self.document = document
        self.provider_name = provider_name
        self.document_id: str | None = None
        self.chunks: list[DocumentChunk] = []
        self.outcomes: dict[int, ChunkOutcome] = {}
        self.started = time.monotonic()

    def result(self, cancelled: bool = False) -> IngestionResult:
        outcomes = dict(self.outcomes)
        if cancelled:
            for chunk in self.chunks:
                outcomes.setdefault(
                    chunk.chunk_index,
                    ChunkOutcome(
                        chunk_index=chunk.chunk_index,
                        succeeded=False,
                        error=ErrorDetail(
                            error_type="OperationTimeoutError",
                            message="Deadline reached before this chunk was stored",
                            stage="ingest",
                        ),
                    ),
                )
        ordered = [outcomes[index] for index in sorted(outcomes)]
        return IngestionResult(
            document_id=self.document_id or "",
            document_title=self.document.metadata.title,
            chunk_count=len(self.chunks),
            succeeded_count=sum(1 for o in ordered if o.succeeded),
            outcomes=ordered,
            embedding_provider=self.provider_name,
            ingestion_time=round(time.monotonic() - self.started, 3),
            cancelled=cancelled,
        )


class IngestionService:
    """Ingests course documents: chunk, embed and persist.

    Parameters
    ----------
    chunker:
        Splits document text into overlapping sentence-aligned chunks.
    embedding_service:
        Resolves providers and embeds chunk text with retry.
    store:
        Persists the document record and every chunk record.
    config:
        Default pipeline options; each call may pass its own.
    """

    def __init__(
        self,
        chunker: TextChunker,
        embedding_service: EmbeddingService,
        store: IChunkStore,
        config: RAGConfig,
    ) -> None:
        self._chunker = chunker
        self._embedding = embedding_service
        self._store = store
        self._config = config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(
        self,
        document: CourseDocument,
        config: RAGConfig | None = None,
        timeout: float | None = None,
    ) -> IngestionResult:
        """Chunk, embed and store *document*.

        Parameters
        ----------
        document:
            Metadata plus the extracted text.
        config:
            Per-call options (chunk sizes, provider, concurrency).
        timeout:
            Seconds until the deadline.  ``None`` means no deadline.

        Returns
        -------
        IngestionResult
            Per-chunk outcomes plus ``chunk_count`` / ``succeeded_count``.

        Raises
        ------
        ValidationError
            The text is empty or whitespace-only.
        ConfigurationError
            The embedding provider is unknown.
        IngestionAbortedError
            The document record could not be created.
        OperationTimeoutError
            The deadline expired; ``partial_result`` holds the progress.
        """
        cfg = config or self._config

        if not document.text or not document.text.strip():
            raise ValidationError(message=f"Document {document.metadata.title!r} has no text")

        provider = self._embedding.resolve(cfg.embedding_provider)
        run = _IngestionRun(document, provider.get_provider_name())

        logger.info(
            "ingestion_started",
            title=document.metadata.title,
            provider=run.provider_name,
            text_chars=len(document.text),
        )

        try:
            if timeout is None:
                await self._run(run, provider, cfg)
            else:
                await asyncio.wait_for(self._run(run, provider, cfg), timeout=timeout)
        except asyncio.TimeoutError as exc:
            partial = run.result(cancelled=True) if run.document_id else None
            logger.warning(
                "ingestion_timed_out",
                title=document.metadata.title,
                document_id=run.document_id,
                completed=len(run.outcomes),
                chunk_count=len(run.chunks),
            )
            raise OperationTimeoutError(
                message=f"Ingestion of {document.metadata.title!r} exceeded {timeout}s",
                provider_name=run.provider_name,
                stage="ingest",
                partial_result=partial,
            ) from exc

        result = run.result()
        logger.info(
            "ingestion_complete",
            title=result.document_title,
            document_id=result.document_id,
            chunk_count=result.chunk_count,
            succeeded_count=result.succeeded_count,
            provider=result.embedding_provider,
            ingestion_time=result.ingestion_time,
        )
        return result

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _run(self, run: _IngestionRun, provider: IEmbeddingProvider, cfg: RAGConfig) -> None:
        try:
            run.document_id = await self._store.create_document(run.document)
        except Exception as exc:
            logger.error(
                "document_creation_failed",
                title=run.document.metadata.title,
                error=str(exc),
            )
            raise IngestionAbortedError(
                message=f"Could not create document {run.document.metadata.title!r}: {exc}",
                provider_name=self._store.get_provider_name(),
            ) from exc

        metadata = ChunkMetadata.from_document(
            run.document.metadata,
            embedding_provider=run.provider_name,
            created_at=datetime.now(timezone.utc),
        )
        chunks = self._chunker.build_chunks(
            run.document.text,
            metadata,
            max_chunk_chars=cfg.max_chunk_chars,
            overlap_chars=cfg.overlap_chars,
        )
        run.chunks = [chunk.model_copy(update={"document_id": run.document_id}) for chunk in chunks]

        await throttled_gather(
            [self._ingest_chunk(run, provider, chunk) for chunk in run.chunks],
            limit=cfg.ingestion_concurrency,
        )

    async def _ingest_chunk(
        self,
        run: _IngestionRun,
        provider: IEmbeddingProvider,
        chunk: DocumentChunk,
    ) -> None:
        """Embed and store one chunk, recording the outcome either way."""
        stage = "embed"
        try:
            vector = await self._embedding.embed_with(provider, chunk.content)
            stage = "persist_chunk"
            record_id = await self._store.create_chunk_record(run.document_id, chunk, vector)
        except Exception as exc:
            logger.warning(
                "chunk_ingestion_failed",
                document_id=run.document_id,
                chunk_index=chunk.chunk_index,
                provider=run.provider_name,
                stage=stage,
                error=str(exc),
            )
            run.outcomes[chunk.chunk_index] = ChunkOutcome(
                chunk_index=chunk.chunk_index,
                succeeded=False,
                error=ErrorDetail.from_exception(exc, stage=stage),
            )
            return

        run.outcomes[chunk.chunk_index] = ChunkOutcome(
            chunk_index=chunk.chunk_index,
            succeeded=True,
            record_id=record_id,
        )
