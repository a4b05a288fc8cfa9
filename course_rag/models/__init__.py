"""Pydantic data models shared by the ingestion and retrieval services."""

from course_rag.models.rag import (
    ChunkMetadata,
    ChunkOutcome,
    CourseDocument,
    DocumentChunk,
    DocumentMetadata,
    ErrorDetail,
    IngestionResult,
    RetrievalFilters,
    RetrievalResponse,
    RetrievedChunk,
)

__all__ = [
    "ChunkMetadata",
    "ChunkOutcome",
    "CourseDocument",
    "DocumentChunk",
    "DocumentMetadata",
    "ErrorDetail",
    "IngestionResult",
    "RetrievalFilters",
    "RetrievalResponse",
    "RetrievedChunk",
]
