"""Local chunk store: ChromaDB for vectors, SQLite for documents.

Wraps ``chromadb.PersistentClient`` (cosine distance) for chunk vectors and
an ``aiosqlite`` database for the document registry, implementing
:class:`IChunkStore` entirely on local disk.  Useful for development and
for running the pipeline without a hosted database.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

# Disable ChromaDB telemetry before importing chromadb; the env var is read
# at import time by some ChromaDB versions.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import aiosqlite
import chromadb
import structlog

from course_rag.interfaces.chunk_store import IChunkStore
from course_rag.models.rag import (
    ChunkMetadata,
    CourseDocument,
    DocumentChunk,
    RetrievalFilters,
    RetrievedChunk,
)
from course_rag.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_CREATE_DOCUMENTS_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id            TEXT    PRIMARY KEY,
    title         TEXT    NOT NULL,
    course        TEXT,
    topic         TEXT,
    week_number   INTEGER,
    tags          TEXT    NOT NULL DEFAULT '',
    file_name     TEXT,
    content_type  TEXT,
    size_bytes    INTEGER,
    storage_uri   TEXT,
    text_chars    INTEGER NOT NULL,
    created_at    TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

_INSERT_DOCUMENT_SQL = """\
INSERT INTO documents
    (id, title, course, topic, week_number, tags, file_name, content_type,
     size_bytes, storage_uri, text_chars)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

# Metadata keys that RetrievalFilters fields map onto.
_FILTER_FIELDS = ("course", "topic", "week_number", "document_id", "embedding_provider")


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    Every vector is computed by an :class:`IEmbeddingProvider` before it
    reaches the store, so ChromaDB's built-in embedding is never invoked.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "course-rag uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBChunkStore(IChunkStore):
    """Chunk store backed by a local ChromaDB collection and SQLite file.

    Chunk record ids are ``"{document_id}:{chunk_index}"``, so re-storing
    the same chunk overwrites it (upsert) instead of duplicating it.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "course_chunks",
        document_db_path: str | Path = "data/documents.db",
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._db_path = Path(document_db_path)
        self._schema_ready = False
        self._client = chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        # A collection persisted with a different embedding function makes
        # newer ChromaDB versions raise ValueError; reopen it as-is then.
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )

    # ------------------------------------------------------------------
    # IChunkStore implementation
    # ------------------------------------------------------------------

    async def create_document(self, document: CourseDocument) -> str:
        """Insert a row into the SQLite ``documents`` table."""
        meta = document.metadata
        document_id = uuid4().hex
        try:
            await self._ensure_schema()
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    _INSERT_DOCUMENT_SQL,
                    (
                        document_id,
                        meta.title,
                        meta.course,
                        meta.topic,
                        meta.week_number,
                        ",".join(meta.tags),
                        meta.file_name,
                        meta.content_type,
                        meta.size_bytes,
                        meta.storage_uri,
                        len(document.text),
                    ),
                )
                await db.commit()
        except Exception as exc:
            raise StorageError(
                message=f"SQLite create_document failed: {exc}",
                provider_name=self.get_provider_name(),
                stage="create_document",
            ) from exc

        logger.info("chromadb_document_created", document_id=document_id, title=meta.title)
        return document_id

    async def get_document(self, document_id: str) -> dict[str, Any] | None:
        """Return the stored document row as a dict, or ``None``."""
        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM documents WHERE id = ?", (document_id,))
            row = await cursor.fetchone()
        return dict(row) if row else None

    async def create_chunk_record(
        self,
        document_id: str,
        chunk: DocumentChunk,
        embedding: list[float],
    ) -> str:
        """Upsert one chunk, its vector and flattened metadata into ChromaDB."""
        record_id = f"{document_id}:{chunk.chunk_index}"
        try:
            self._collection.upsert(
                ids=[record_id],
                embeddings=[embedding],
                documents=[chunk.content],
                metadatas=[self._chunk_to_metadata(document_id, chunk)],
            )
        except Exception as exc:
            raise StorageError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
                stage="persist_chunk",
            ) from exc

        logger.debug(
            "chromadb_chunk_stored",
            document_id=document_id,
            chunk_index=chunk.chunk_index,
        )
        return record_id

    async def similarity_search(
        self,
        query_embedding: list[float],
        top_k: int,
        threshold: float,
        filters: RetrievalFilters | None = None,
    ) -> list[RetrievedChunk]:
        """Query the collection and convert cosine distance to similarity."""
        try:
            count = self._collection.count()
            if count == 0:
                return []

            kwargs: dict[str, Any] = {
                "query_embeddings": [query_embedding],
                "n_results": min(top_k, count),
                "include": ["documents", "metadatas", "distances"],
            }
            where_clause = self._translate_filters(filters) if filters else None
            if where_clause:
                kwargs["where"] = where_clause

            results = self._collection.query(**kwargs)
        except Exception as exc:
            raise StorageError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
                stage="similarity_search",
            ) from exc

        if not results["ids"] or not results["ids"][0]:
            return []

        ids = results["ids"][0]
        documents = results["documents"][0]
        metadatas = results["metadatas"][0]
        distances = results["distances"][0]

        retrieved: list[RetrievedChunk] = []
        for record_id, text, meta, distance in zip(ids, documents, metadatas, distances, strict=True):
            # Cosine distance lies in [0, 2].
            similarity = max(-1.0, min(1.0, 1.0 - distance))
            if similarity < threshold:
                continue
            retrieved.append(
                RetrievedChunk(
                    chunk=self._metadata_to_chunk(meta, text),
                    similarity_score=similarity,
                    record_id=record_id,
                )
            )

        retrieved.sort(key=lambda rc: rc.similarity_score, reverse=True)
        logger.info(
            "chromadb_query",
            raw_results=len(ids),
            results_count=len(retrieved),
            top_score=retrieved[0].similarity_score if retrieved else None,
        )
        return retrieved

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB collection is accessible."""
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_DOCUMENTS_SQL)
            await db.commit()
        self._schema_ready = True
        logger.info("document_db_initialized", path=str(self._db_path))

    @staticmethod
    def _chunk_to_metadata(document_id: str, chunk: DocumentChunk) -> dict[str, str | int | float | bool]:
        """Flatten a chunk's metadata into ChromaDB-compatible values.

        ChromaDB metadata values must be str, int, float, or bool, so
        ``None`` fields are omitted and tags become a comma-separated string.
        """
        source = chunk.metadata
        meta: dict[str, str | int | float | bool] = {
            "document_id": document_id,
            "chunk_index": chunk.chunk_index,
            "start_char": chunk.start_char,
            "end_char": chunk.end_char,
            "document_title": source.document_title,
            "tags": ",".join(source.tags),
            "embedding_provider": source.embedding_provider,
            "created_at": source.created_at.isoformat(),
        }
        optional = {
            "course": source.course,
            "topic": source.topic,
            "week_number": source.week_number,
            "file_name": source.file_name,
            "content_type": source.content_type,
            "size_bytes": source.size_bytes,
        }
        meta.update({key: value for key, value in optional.items() if value is not None})
        return meta

    @staticmethod
    def _metadata_to_chunk(meta: dict[str, Any], text: str) -> DocumentChunk:
        """Rebuild a DocumentChunk from a stored metadata dict."""
        return DocumentChunk(
            document_id=meta.get("document_id"),
            chunk_index=int(meta.get("chunk_index", 0)),
            content=text,
            start_char=int(meta.get("start_char", 0)),
            end_char=int(meta.get("end_char", len(text))),
            metadata=ChunkMetadata(
                document_title=meta.get("document_title", ""),
                course=meta.get("course"),
                topic=meta.get("topic"),
                week_number=meta.get("week_number"),
                tags=ChromaDBChunkStore._split_tags(meta.get("tags", "")),
                file_name=meta.get("file_name"),
                content_type=meta.get("content_type"),
                size_bytes=meta.get("size_bytes"),
                embedding_provider=meta.get("embedding_provider", ""),
                created_at=(
                    datetime.fromisoformat(meta["created_at"])
                    if meta.get("created_at")
                    else datetime.now(timezone.utc)
                ),
            ),
        )

    @staticmethod
    def _split_tags(value: str | Any) -> list[str]:
        """Split a comma-separated tag string back into a list."""
        if not value or not isinstance(value, str):
            return []
        return [tag.strip() for tag in value.split(",") if tag.strip()]

    @staticmethod
    def _translate_filters(filters: RetrievalFilters) -> dict[str, Any] | None:
        """Translate equality filters into a ChromaDB ``where`` clause.

        A single condition is passed as-is; several are combined with
        ``$and`` because ChromaDB rejects multi-key ``where`` dicts.
        """
        clauses: list[dict[str, Any]] = []
        for field in _FILTER_FIELDS:
            value = getattr(filters, field)
            if value is not None:
                clauses.append({field: value})
        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}
