"""Similarity retrieval of grounding chunks for a question.

Pipeline stages: **validate -> embed query -> search store -> filter/rank**.

Storage failures never reach the caller as exceptions: the answer
generator can still produce an ungrounded answer, so a failed search comes
back as an empty :class:`RetrievalResponse` whose ``error`` names the
failure.  Embedding failures, on the other hand, propagate typed; there is
nothing to search with.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from course_rag.models.rag import ErrorDetail, RetrievalFilters, RetrievalResponse, RetrievedChunk
from course_rag.utils.errors import OperationTimeoutError, ValidationError

if TYPE_CHECKING:
    from course_rag.config.rag_config import RAGConfig
    from course_rag.interfaces.chunk_store import IChunkStore
    from course_rag.services.embedding_service import EmbeddingService

logger = structlog.get_logger(logger_name=__name__)


class RetrievalService:
    """Finds the stored chunks most similar to a query.

    Parameters
    ----------
    embedding_service:
        Embeds the query with the same provider used at ingestion.
    store:
        Runs the similarity search.
    config:
        Supplies the default ``top_k``, ``similarity_threshold`` and
        embedding provider.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        store: IChunkStore,
        config: RAGConfig,
    ) -> None:
        self._embedding = embedding_service
        self._store = store
        self._config = config

    async def retrieve(
        self,
        query_text: str,
        top_k: int | None = None,
        provider_name: str | None = None,
        similarity_threshold: float | None = None,
        filters: RetrievalFilters | None = None,
        timeout: float | None = None,
    ) -> RetrievalResponse:
        """Return up to *top_k* chunks scoring at least the threshold.

        Raises
        ------
        ValidationError
            Blank query, ``top_k < 1`` or threshold outside ``[-1, 1]``.
        ConfigurationError
            Unknown embedding provider.
        ProviderUnavailableError, ProviderResponseInvalidError
            The query could not be embedded.
        OperationTimeoutError
            The deadline expired.
        """
        top_k = self._config.top_k if top_k is None else top_k
        threshold = (
            self._config.similarity_threshold if similarity_threshold is None else similarity_threshold
        )
        provider_name = provider_name or self._config.embedding_provider

        if not query_text or not query_text.strip():
            raise ValidationError(message="Query text must not be empty")
        if top_k < 1:
            raise ValidationError(message=f"top_k must be at least 1, got {top_k}")
        if not -1.0 <= threshold <= 1.0:
            raise ValidationError(message=f"similarity_threshold must be in [-1, 1], got {threshold}")

        work = self._retrieve(query_text, top_k, provider_name, threshold, filters)
        if timeout is None:
            return await work
        try:
            return await asyncio.wait_for(work, timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("retrieval_timed_out", query=query_text[:80], timeout=timeout)
            raise OperationTimeoutError(
                message=f"Retrieval exceeded {timeout}s",
                provider_name=provider_name,
                stage="retrieve",
            ) from exc

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _retrieve(
        self,
        query_text: str,
        top_k: int,
        provider_name: str,
        threshold: float,
        filters: RetrievalFilters | None,
    ) -> RetrievalResponse:
        provider = self._embedding.resolve(provider_name)
        provider_name = provider.get_provider_name()
        query_vector = await self._embedding.embed_with(provider, query_text)

        # Vectors from different providers are not comparable.
        scoped = (filters or RetrievalFilters()).model_copy(
            update={"embedding_provider": provider_name}
        )

        try:
            candidates = await self._store.similarity_search(
                query_vector, top_k=top_k, threshold=threshold, filters=scoped
            )
        except Exception as exc:
            logger.error(
                "similarity_search_failed",
                store=self._store.get_provider_name(),
                provider=provider_name,
                error=str(exc),
            )
            return RetrievalResponse(
                query=query_text,
                embedding_provider=provider_name,
                error=ErrorDetail(
                    error_type="StorageError",
                    message=str(exc),
                    stage="similarity_search",
                    provider_name=self._store.get_provider_name(),
                ),
            )

        results = self._rank(candidates, provider_name, threshold)[:top_k]
        logger.info(
            "retrieval_complete",
            provider=provider_name,
            candidates=len(candidates),
            returned=len(results),
            top_score=results[0].similarity_score if results else None,
        )
        return RetrievalResponse(query=query_text, results=results, embedding_provider=provider_name)

    @staticmethod
    def _rank(
        candidates: list[RetrievedChunk],
        provider_name: str,
        threshold: float,
    ) -> list[RetrievedChunk]:
        """Drop foreign-provider and below-threshold hits, then sort."""
        kept: list[RetrievedChunk] = []
        for candidate in candidates:
            stored_provider = candidate.chunk.metadata.embedding_provider
            if stored_provider != provider_name:
                logger.warning(
                    "cross_provider_result_dropped",
                    expected=provider_name,
                    found=stored_provider,
                    document_id=candidate.chunk.document_id,
                    chunk_index=candidate.chunk.chunk_index,
                )
                continue
            if candidate.similarity_score < threshold:
                continue
            kept.append(candidate)

        kept.sort(
            key=lambda r: (-r.similarity_score, r.chunk.chunk_index, r.chunk.document_id or "")
        )
        return kept
