"""Shared pytest fixtures for the course-rag test suite."""

from __future__ import annotations

import math
import re
import zlib
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import pytest

from course_rag.config.rag_config import RAGConfig
from course_rag.interfaces.chunk_store import IChunkStore
from course_rag.interfaces.embedding_provider import IEmbeddingProvider
from course_rag.models.rag import (
    ChunkMetadata,
    CourseDocument,
    DocumentChunk,
    DocumentMetadata,
    RetrievalFilters,
    RetrievedChunk,
)
from course_rag.providers.embedding.registry import EmbeddingProviderRegistry
from course_rag.services.embedding_service import EmbeddingService
from course_rag.utils.errors import StorageError

# ---------------------------------------------------------------------------
# Embedding fakes
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 256
_WORD_RE = re.compile(r"[a-z]+")


def _bag_of_words_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Deterministic unit vector: one hashed bucket per lowercase word.

    Texts sharing words get a positive cosine similarity, so retrieval tests
    can reason about which chunk should rank first.
    """
    values = [0.0] * dim
    for word in _WORD_RE.findall(text.lower()):
        values[zlib.crc32(word.encode("utf-8")) % dim] += 1.0
    if not any(values):
        values[0] = 1.0
    magnitude = math.sqrt(sum(v * v for v in values))
    return [v / magnitude for v in values]


def cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests.

    Any text containing one of *fail_markers* raises the mapped exception,
    which lets a test fail exactly one chunk of a document.
    """

    def __init__(
        self,
        name: str = "mock-embedding",
        fail_markers: dict[str, Exception] | None = None,
    ) -> None:
        self._name = name
        self.fail_markers = fail_markers or {}
        self.calls: list[str] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed_single(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.calls.append(text)
        for marker, exc in self.fail_markers.items():
            if marker in text:
                raise exc
        return _bag_of_words_vector(text)

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Store fake
# ---------------------------------------------------------------------------


class MockChunkStore(IChunkStore):
    """In-memory chunk store with cosine similarity search."""

    def __init__(self) -> None:
        self.documents: dict[str, CourseDocument] = {}
        self.records: dict[str, tuple[DocumentChunk, list[float]]] = {}
        self.fail_create_document = False
        self.fail_search = False
        self.fail_chunk_indices: set[int] = set()

    async def create_document(self, document: CourseDocument) -> str:
        if self.fail_create_document:
            raise StorageError(message="documents table unavailable", provider_name="mock-store")
        document_id = uuid4().hex
        self.documents[document_id] = document
        return document_id

    async def create_chunk_record(
        self,
        document_id: str,
        chunk: DocumentChunk,
        embedding: list[float],
    ) -> str:
        if chunk.chunk_index in self.fail_chunk_indices:
            raise StorageError(message="insert rejected", provider_name="mock-store")
        record_id = f"{document_id}:{chunk.chunk_index}"
        self.records[record_id] = (chunk.model_copy(update={"document_id": document_id}), embedding)
        return record_id

    async def similarity_search(
        self,
        query_embedding: list[float],
        top_k: int,
        threshold: float,
        filters: RetrievalFilters | None = None,
    ) -> list[RetrievedChunk]:
        if self.fail_search:
            raise StorageError(message="connection refused", provider_name="mock-store")

        scored: list[RetrievedChunk] = []
        for record_id, (chunk, vector) in self.records.items():
            if filters is not None and not self._matches_filters(chunk, filters):
                continue
            score = cosine(query_embedding, vector)
            if score < threshold:
                continue
            scored.append(RetrievedChunk(chunk=chunk, similarity_score=score, record_id=record_id))

        scored.sort(key=lambda r: r.similarity_score, reverse=True)
        return scored[:top_k]

    def get_provider_name(self) -> str:
        return "mock-store"

    def is_available(self) -> bool:
        return True

    @staticmethod
    def _matches_filters(chunk: DocumentChunk, filters: RetrievalFilters) -> bool:
        meta = chunk.metadata
        checks = {
            "course": meta.course,
            "topic": meta.topic,
            "week_number": meta.week_number,
            "embedding_provider": meta.embedding_provider,
            "document_id": chunk.document_id,
        }
        for field, actual in checks.items():
            wanted = getattr(filters, field)
            if wanted is not None and wanted != actual:
                return False
        return True


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

FIXED_TIME = datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)


def make_chunk_metadata(**overrides) -> ChunkMetadata:
    defaults = {
        "document_title": "Deadlocks",
        "course": "CSE-101",
        "topic": "Operating Systems",
        "week_number": 3,
        "tags": ["theory"],
        "embedding_provider": "mock-embedding",
        "created_at": FIXED_TIME,
    }
    defaults.update(overrides)
    return ChunkMetadata(**defaults)


def make_chunk(
    content: str = "Deadlocks occur when processes wait on each other.",
    chunk_index: int = 0,
    document_id: str | None = "doc-1",
    start_char: int = 0,
    **metadata_overrides,
) -> DocumentChunk:
    return DocumentChunk(
        document_id=document_id,
        chunk_index=chunk_index,
        content=content,
        start_char=start_char,
        end_char=start_char + len(content),
        metadata=make_chunk_metadata(**metadata_overrides),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    """Mock IEmbeddingProvider returning deterministic bag-of-words vectors."""
    return MockEmbeddingProvider()


@pytest.fixture
def mock_chunk_store() -> MockChunkStore:
    """Mock IChunkStore backed by in-memory dicts."""
    return MockChunkStore()


@pytest.fixture
def rag_config() -> RAGConfig:
    return RAGConfig(
        max_chunk_chars=100,
        overlap_chars=20,
        embedding_provider="mock-embedding",
        top_k=5,
        similarity_threshold=0.1,
        ingestion_concurrency=2,
    )


@pytest.fixture
def embedding_service(mock_embedding_provider: MockEmbeddingProvider) -> EmbeddingService:
    """EmbeddingService over the mock provider, with no retry delay."""
    return EmbeddingService(
        registry=EmbeddingProviderRegistry([mock_embedding_provider]),
        default_provider="mock-embedding",
        max_attempts=3,
        retry_base_delay=0.0,
    )


@pytest.fixture
def sample_course_text() -> str:
    """Five-paragraph operating-systems lecture text for chunker tests."""
    return (
        "Deadlocks occur when two or more processes wait on each other forever. "
        "This happens due to circular wait. "
        "Prevention uses resource ordering.\n\n"
        "Mutual exclusion means a resource can be held by one process at a time. "
        "Hold and wait means a process keeps its resources while requesting more. "
        "No preemption means resources cannot be forcibly taken away.\n\n"
        "The banker's algorithm avoids deadlock by checking for safe states! "
        "Is every request safe? Only if the system can still finish every process.\n\n"
        "Detection lets deadlocks happen and then breaks them. "
        "Recovery may terminate processes or preempt their resources.\n\n"
        "Livelock is related but different. Processes keep changing state without progress."
    )


@pytest.fixture
def sample_document(sample_course_text: str) -> CourseDocument:
    return CourseDocument(
        metadata=DocumentMetadata(
            title="Deadlocks",
            course="CSE-101",
            topic="Operating Systems",
            week_number=3,
            tags=["theory"],
            file_name="week3_deadlocks.txt",
            content_type="text/plain",
            size_bytes=len(sample_course_text),
        ),
        text=sample_course_text,
    )
