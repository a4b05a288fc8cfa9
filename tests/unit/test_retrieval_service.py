"""Unit tests for RetrievalService -- ranking, filtering, degraded responses."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from course_rag.config.rag_config import RAGConfig
from course_rag.interfaces.chunk_store import IChunkStore
from course_rag.models.rag import RetrievalFilters, RetrievedChunk
from course_rag.services.embedding_service import EmbeddingService
from course_rag.services.retrieval_service import RetrievalService
from course_rag.utils.errors import (
    ConfigurationError,
    OperationTimeoutError,
    ProviderUnavailableError,
    ValidationError,
)
from tests.conftest import (
    MockChunkStore,
    MockEmbeddingProvider,
    _bag_of_words_vector,
    make_chunk,
)

_LECTURE_SENTENCES = [
    "Deadlock prevention removes one of the four necessary conditions.",
    "Deadlock avoidance uses the banker's algorithm to stay in safe states.",
    "Deadlock detection builds a wait-for graph and searches for cycles.",
    "Paging splits memory into fixed-size frames.",
    "Round robin scheduling gives each process a time quantum.",
]


def _seed(store: MockChunkStore, sentences: list[str] = _LECTURE_SENTENCES, **meta) -> None:
    offset = 0
    for index, sentence in enumerate(sentences):
        chunk = make_chunk(content=sentence, chunk_index=index, start_char=offset, **meta)
        store.records[f"doc-1:{index}"] = (chunk, _bag_of_words_vector(sentence))
        offset += len(sentence) + 1


def _stub_store(results: list[RetrievedChunk]) -> MagicMock:
    store = MagicMock(spec=IChunkStore)
    store.similarity_search = AsyncMock(return_value=results)
    store.get_provider_name.return_value = "stub-store"
    return store


def _hit(score: float, chunk_index: int = 0, document_id: str = "doc-1", **meta) -> RetrievedChunk:
    return RetrievedChunk(
        chunk=make_chunk(
            content=f"chunk {chunk_index} of {document_id}",
            chunk_index=chunk_index,
            document_id=document_id,
            **meta,
        ),
        similarity_score=score,
    )


@pytest.fixture
def service(
    embedding_service: EmbeddingService,
    mock_chunk_store: MockChunkStore,
    rag_config: RAGConfig,
) -> RetrievalService:
    return RetrievalService(embedding_service, mock_chunk_store, rag_config)


# ======================================================================
# Ranking
# ======================================================================


class TestRetrievalRanking:
    @pytest.mark.asyncio
    async def test_returns_top_k_in_descending_order(
        self, service: RetrievalService, mock_chunk_store: MockChunkStore
    ) -> None:
        _seed(mock_chunk_store)

        response = await service.retrieve("deadlock detection and prevention", top_k=3, similarity_threshold=0.0)

        assert response.error is None
        assert len(response.results) == 3
        scores = [r.similarity_score for r in response.results]
        assert scores == sorted(scores, reverse=True)
        assert "Deadlock" in response.results[0].chunk.content

    @pytest.mark.asyncio
    async def test_below_threshold_results_dropped(
        self, service: RetrievalService, mock_chunk_store: MockChunkStore
    ) -> None:
        _seed(mock_chunk_store)

        response = await service.retrieve("paging frames memory", similarity_threshold=0.5)

        assert [r.chunk.chunk_index for r in response.results] == [3]
        assert all(r.similarity_score >= 0.5 for r in response.results)

    @pytest.mark.asyncio
    async def test_empty_store_is_not_an_error(self, service: RetrievalService) -> None:
        response = await service.retrieve("anything at all")

        assert response.results == []
        assert response.error is None
        assert response.degraded is False

    @pytest.mark.asyncio
    async def test_ties_broken_by_chunk_index_then_document(
        self, embedding_service: EmbeddingService, rag_config: RAGConfig
    ) -> None:
        store = _stub_store(
            [
                _hit(0.8, chunk_index=2, document_id="doc-b"),
                _hit(0.8, chunk_index=1, document_id="doc-b"),
                _hit(0.8, chunk_index=1, document_id="doc-a"),
                _hit(0.9, chunk_index=5, document_id="doc-c"),
            ]
        )
        service = RetrievalService(embedding_service, store, rag_config)

        response = await service.retrieve("deadlock")

        order = [(r.chunk.document_id, r.chunk.chunk_index) for r in response.results]
        assert order == [("doc-c", 5), ("doc-a", 1), ("doc-b", 1), ("doc-b", 2)]

    @pytest.mark.asyncio
    async def test_foreign_provider_results_dropped(
        self, embedding_service: EmbeddingService, rag_config: RAGConfig
    ) -> None:
        store = _stub_store(
            [
                _hit(0.95, chunk_index=0, embedding_provider="openai"),
                _hit(0.70, chunk_index=1),
            ]
        )
        service = RetrievalService(embedding_service, store, rag_config)

        response = await service.retrieve("deadlock")

        assert [r.chunk.chunk_index for r in response.results] == [1]

    @pytest.mark.asyncio
    async def test_store_results_above_top_k_are_cut(
        self, embedding_service: EmbeddingService, rag_config: RAGConfig
    ) -> None:
        store = _stub_store([_hit(0.9 - i * 0.1, chunk_index=i) for i in range(5)])
        service = RetrievalService(embedding_service, store, rag_config)

        response = await service.retrieve("deadlock", top_k=2)

        assert [r.chunk.chunk_index for r in response.results] == [0, 1]


# ======================================================================
# Filters and provider scoping
# ======================================================================


class TestRetrievalFilters:
    @pytest.mark.asyncio
    async def test_provider_scope_added_to_filters(
        self, embedding_service: EmbeddingService, rag_config: RAGConfig
    ) -> None:
        store = _stub_store([])
        service = RetrievalService(embedding_service, store, rag_config)

        await service.retrieve("deadlock", filters=RetrievalFilters(course="CSE-101", week_number=3))

        call = store.similarity_search.await_args
        sent = call.kwargs["filters"]
        assert sent.course == "CSE-101"
        assert sent.week_number == 3
        assert sent.embedding_provider == "mock-embedding"
        assert call.kwargs["top_k"] == rag_config.top_k
        assert call.kwargs["threshold"] == rag_config.similarity_threshold

    @pytest.mark.asyncio
    async def test_metadata_filters_restrict_results(
        self, service: RetrievalService, mock_chunk_store: MockChunkStore
    ) -> None:
        _seed(mock_chunk_store, course="CSE-101")
        extra = make_chunk(content="Deadlock in databases uses lock timeouts.", chunk_index=0, document_id="doc-2", course="DB-200")
        mock_chunk_store.records["doc-2:0"] = (extra, _bag_of_words_vector(extra.content))

        response = await service.retrieve(
            "deadlock", similarity_threshold=0.0, filters=RetrievalFilters(course="DB-200")
        )

        assert [r.chunk.document_id for r in response.results] == ["doc-2"]


# ======================================================================
# Failures
# ======================================================================


class TestRetrievalFailures:
    @pytest.mark.asyncio
    async def test_store_failure_returns_degraded_response(
        self, service: RetrievalService, mock_chunk_store: MockChunkStore
    ) -> None:
        mock_chunk_store.fail_search = True

        response = await service.retrieve("deadlock")

        assert response.results == []
        assert response.degraded is True
        assert response.error.error_type == "StorageError"
        assert response.error.stage == "similarity_search"
        assert response.error.provider_name == "mock-store"
        assert response.embedding_provider == "mock-embedding"

    @pytest.mark.asyncio
    async def test_embedding_failure_propagates(self, rag_config: RAGConfig) -> None:
        from course_rag.providers.embedding.registry import EmbeddingProviderRegistry

        provider = MockEmbeddingProvider(
            fail_markers={"deadlock": ProviderUnavailableError(message="down", provider_name="mock-embedding")}
        )
        embedding = EmbeddingService(
            EmbeddingProviderRegistry([provider]),
            default_provider="mock-embedding",
            max_attempts=2,
            retry_base_delay=0.0,
        )
        store = _stub_store([])
        service = RetrievalService(embedding, store, rag_config)

        with pytest.raises(ProviderUnavailableError):
            await service.retrieve("deadlock")
        store.similarity_search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_provider(self, service: RetrievalService) -> None:
        with pytest.raises(ConfigurationError):
            await service.retrieve("deadlock", provider_name="voyage")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"query_text": ""},
            {"query_text": "   "},
            {"query_text": "deadlock", "top_k": 0},
            {"query_text": "deadlock", "similarity_threshold": 1.5},
            {"query_text": "deadlock", "similarity_threshold": -1.01},
        ],
        ids=["empty", "blank", "zero-top-k", "threshold-high", "threshold-low"],
    )
    async def test_invalid_arguments(self, service: RetrievalService, kwargs: dict) -> None:
        with pytest.raises(ValidationError):
            await service.retrieve(**kwargs)

    @pytest.mark.asyncio
    async def test_timeout(self, embedding_service: EmbeddingService, rag_config: RAGConfig) -> None:
        async def _slow_search(*args, **kwargs):
            await asyncio.sleep(1.0)
            return []

        store = _stub_store([])
        store.similarity_search = AsyncMock(side_effect=_slow_search)
        service = RetrievalService(embedding_service, store, rag_config)

        with pytest.raises(OperationTimeoutError) as exc_info:
            await service.retrieve("deadlock", timeout=0.05)
        assert exc_info.value.stage == "retrieve"
