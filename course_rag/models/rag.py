"""RAG pipeline data models for course documents.

Defines Pydantic v2 models for documents, chunks, retrieval results and the
ingestion/retrieval reports.  All models are frozen: a chunk is created once
during ingestion and never mutated, only superseded by re-ingesting its
document.

Flow overview:

    1. INGESTION: a :class:`CourseDocument` (metadata + extracted text) is
       split into :class:`DocumentChunk` objects, each carrying a
       :class:`ChunkMetadata` copy of the document-level metadata.
    2. EMBEDDING: every chunk's content is turned into a vector by the
       configured embedding provider.
    3. STORAGE: (chunk, vector, metadata) triples are persisted by the store.
    4. RETRIEVAL: a query vector is matched against stored vectors and the
       hits come back as :class:`RetrievedChunk` objects inside a
       :class:`RetrievalResponse`.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from course_rag.utils.errors import CourseRAGError


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------
class DocumentMetadata(BaseModel):
    """Document-level metadata supplied at upload time."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=1, description="Human-readable document title.")
    course: str | None = Field(default=None, description="Course reference, e.g. 'CSE-101'.")
    topic: str | None = Field(default=None, description="Topic within the course.")
    week_number: int | None = Field(default=None, ge=0, description="Teaching week.")
    tags: list[str] = Field(default_factory=list, description="Free-form tags.")
    file_name: str | None = Field(default=None, description="Original upload file name.")
    content_type: str | None = Field(default=None, description="MIME type of the upload.")
    size_bytes: int | None = Field(default=None, ge=0, description="Upload size in bytes.")
    storage_uri: str | None = Field(default=None, description="Where the raw file is stored.")

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("title must not be blank")
        return stripped

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        seen: list[str] = []
        for tag in value:
            tag = tag.strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen


class CourseDocument(BaseModel):
    """One uploaded source file: its metadata and raw extracted text."""

    model_config = ConfigDict(frozen=True)

    metadata: DocumentMetadata
    text: str = Field(description="Full extracted text of the document.")


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------
class ChunkMetadata(BaseModel):
    """Copy of document-level metadata carried by every chunk.

    Makes a retrieved chunk self-contained: a citation can be built without
    another round trip to the store.
    """

    model_config = ConfigDict(frozen=True)

    document_title: str
    course: str | None = None
    topic: str | None = None
    week_number: int | None = None
    tags: list[str] = Field(default_factory=list)
    file_name: str | None = None
    content_type: str | None = None
    size_bytes: int | None = None
    embedding_provider: str = Field(description="Provider that produced the chunk's vector.")
    created_at: datetime = Field(default_factory=_utc_now)

    @classmethod
    def from_document(
        cls,
        metadata: DocumentMetadata,
        embedding_provider: str,
        created_at: datetime | None = None,
    ) -> ChunkMetadata:
        return cls(
            document_title=metadata.title,
            course=metadata.course,
            topic=metadata.topic,
            week_number=metadata.week_number,
            tags=list(metadata.tags),
            file_name=metadata.file_name,
            content_type=metadata.content_type,
            size_bytes=metadata.size_bytes,
            embedding_provider=embedding_provider,
            created_at=created_at or _utc_now(),
        )


class DocumentChunk(BaseModel):
    """A contiguous, possibly overlapping slice of a document's text.

    ``content`` equals ``text[start_char:end_char]`` of the original
    document.  ``document_id`` is ``None`` until the owning document has
    been persisted.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str | None = Field(default=None, description="Owning document identifier.")
    chunk_index: int = Field(ge=0, description="Zero-based, gapless position in the document.")
    content: str = Field(min_length=1)
    start_char: int = Field(ge=0)
    end_char: int = Field(ge=0)
    metadata: ChunkMetadata

    @model_validator(mode="after")
    def _span_not_empty(self) -> DocumentChunk:
        if self.end_char <= self.start_char:
            raise ValueError(
                f"end_char ({self.end_char}) must be greater than start_char ({self.start_char})"
            )
        return self


# ---------------------------------------------------------------------------
# Errors as data
# ---------------------------------------------------------------------------
class ErrorDetail(BaseModel):
    """Serialisable description of a failure attached to a report."""

    model_config = ConfigDict(frozen=True)

    error_type: str
    message: str
    stage: str | None = None
    provider_name: str | None = None

    @classmethod
    def from_exception(cls, exc: BaseException, stage: str | None = None) -> ErrorDetail:
        if isinstance(exc, CourseRAGError):
            return cls(
                error_type=type(exc).__name__,
                message=exc.message,
                stage=exc.stage or stage,
                provider_name=exc.provider_name,
            )
        return cls(error_type=type(exc).__name__, message=str(exc), stage=stage)


# ---------------------------------------------------------------------------
# Ingestion report
# ---------------------------------------------------------------------------
class ChunkOutcome(BaseModel):
    """Result of embedding and persisting one chunk."""

    model_config = ConfigDict(frozen=True)

    chunk_index: int = Field(ge=0)
    succeeded: bool
    record_id: str | None = None
    error: ErrorDetail | None = None


class IngestionResult(BaseModel):
    """Summary of one document ingestion.

    ``succeeded_count`` versus ``chunk_count`` tells the caller whether the
    document is only partially grounded.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    document_title: str
    chunk_count: int = Field(default=0, ge=0)
    succeeded_count: int = Field(default=0, ge=0)
    outcomes: list[ChunkOutcome] = Field(default_factory=list)
    embedding_provider: str = ""
    ingestion_time: float = Field(default=0.0, ge=0.0)
    cancelled: bool = False

    @property
    def failed_count(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.succeeded)

    @property
    def is_partial(self) -> bool:
        return self.succeeded_count < self.chunk_count


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------
class RetrievalFilters(BaseModel):
    """Optional metadata restrictions applied by the store's similarity search."""

    model_config = ConfigDict(frozen=True)

    course: str | None = None
    topic: str | None = None
    week_number: int | None = Field(default=None, ge=0)
    document_id: str | None = None
    embedding_provider: str | None = None


class RetrievedChunk(BaseModel):
    """A stored chunk returned by similarity search, with its score."""

    model_config = ConfigDict(frozen=True)

    chunk: DocumentChunk
    similarity_score: float = Field(ge=-1.0, le=1.0)
    record_id: str | None = None

    @property
    def citation(self) -> str:
        """Human-readable citation, e.g. ``"Deadlocks (CSE-101, week 3) chars 0-80"``."""
        meta = self.chunk.metadata
        context = [meta.course] if meta.course else []
        if meta.week_number is not None:
            context.append(f"week {meta.week_number}")
        label = meta.document_title
        if context:
            label = f"{label} ({', '.join(context)})"
        return f"{label} chars {self.chunk.start_char}-{self.chunk.end_char}"


class RetrievalResponse(BaseModel):
    """Ranked grounding candidates for one query.

    An empty ``results`` list with ``error is None`` means nothing matched
    above the threshold.  An empty list with ``error`` set means the search
    backend failed and the caller should proceed ungrounded.
    """

    model_config = ConfigDict(frozen=True)

    query: str
    results: list[RetrievedChunk] = Field(default_factory=list)
    embedding_provider: str = ""
    error: ErrorDetail | None = None

    @property
    def degraded(self) -> bool:
        return self.error is not None
