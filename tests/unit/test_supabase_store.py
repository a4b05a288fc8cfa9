"""Unit tests for SupabaseChunkStore with a mocked supabase client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from course_rag.config.settings import Settings
from course_rag.models.rag import CourseDocument, DocumentMetadata, RetrievalFilters
from course_rag.providers.store.supabase_store import SupabaseChunkStore
from course_rag.utils.errors import ConfigurationError, StorageError
from tests.conftest import FIXED_TIME, make_chunk, make_chunk_metadata


def _client_returning(data) -> MagicMock:
    """Client whose table().insert().execute() and rpc().execute() return *data*."""
    client = MagicMock()
    response = MagicMock(data=data)
    client.table.return_value.insert.return_value.execute.return_value = response
    client.rpc.return_value.execute.return_value = response
    return client


def _match_row(**overrides) -> dict:
    row = {
        "id": 17,
        "material_id": "mat-1",
        "chunk_index": 2,
        "content": "Deadlocks need circular wait.",
        "file_metadata": make_chunk_metadata().model_dump(mode="json"),
        "char_position": 120,
        "char_end": 149,
        "similarity": 0.82,
    }
    row.update(overrides)
    return row


class TestFromSettings:
    def test_missing_credentials(self) -> None:
        with pytest.raises(ConfigurationError):
            SupabaseChunkStore.from_settings(Settings(supabase_url="", supabase_key=""))

    def test_builds_client(self) -> None:
        settings = Settings(
            supabase_url="https://project.supabase.co",
            supabase_key="service-key",
            supabase_chunks_table="lecture_chunks",
        )
        with patch(
            "course_rag.providers.store.supabase_store.create_client",
            return_value=MagicMock(),
        ) as mock_create:
            store = SupabaseChunkStore.from_settings(settings)

        mock_create.assert_called_once_with("https://project.supabase.co", "service-key")
        assert store._chunks_table == "lecture_chunks"
        assert store.get_provider_name() == "supabase"


class TestCreateDocument:
    @pytest.mark.asyncio
    async def test_inserts_material_row(self) -> None:
        client = _client_returning([{"id": "mat-1"}])
        store = SupabaseChunkStore(client)
        document = CourseDocument(
            metadata=DocumentMetadata(
                title="Deadlocks",
                course="CSE-101",
                week_number=3,
                tags=["theory"],
                storage_uri="https://files.example/deadlocks.pdf",
            ),
            text="Deadlocks occur when processes wait on each other.",
        )

        document_id = await store.create_document(document)

        assert document_id == "mat-1"
        client.table.assert_called_with("materials")
        row = client.table.return_value.insert.call_args.args[0]
        assert row["title"] == "Deadlocks"
        assert row["week_number"] == 3
        assert row["content_text"] == document.text
        assert row["file_url"] == "https://files.example/deadlocks.pdf"

    @pytest.mark.asyncio
    async def test_empty_insert_response(self) -> None:
        store = SupabaseChunkStore(_client_returning([]))
        document = CourseDocument(metadata=DocumentMetadata(title="Notes"), text="Some text.")

        with pytest.raises(StorageError) as exc_info:
            await store.create_document(document)
        assert exc_info.value.stage == "create_document"

    @pytest.mark.asyncio
    async def test_client_error_wrapped(self) -> None:
        client = MagicMock()
        client.table.return_value.insert.return_value.execute.side_effect = RuntimeError("401 Unauthorized")
        store = SupabaseChunkStore(client)
        document = CourseDocument(metadata=DocumentMetadata(title="Notes"), text="Some text.")

        with pytest.raises(StorageError) as exc_info:
            await store.create_document(document)
        assert exc_info.value.provider_name == "supabase"
        assert isinstance(exc_info.value.__cause__, RuntimeError)


class TestCreateChunkRecord:
    @pytest.mark.asyncio
    async def test_inserts_chunk_row(self) -> None:
        client = _client_returning([{"id": 99}])
        store = SupabaseChunkStore(client)
        chunk = make_chunk("Circular wait.", chunk_index=3, start_char=40)

        record_id = await store.create_chunk_record("mat-1", chunk, [0.1, 0.2])

        assert record_id == "99"
        client.table.assert_called_with("chunks")
        row = client.table.return_value.insert.call_args.args[0]
        assert row["material_id"] == "mat-1"
        assert row["chunk_index"] == 3
        assert row["embedding"] == [0.1, 0.2]
        assert row["char_position"] == 40
        assert row["char_end"] == 40 + len("Circular wait.")
        assert row["file_metadata"]["document_title"] == "Deadlocks"
        assert row["created_at"] == FIXED_TIME.isoformat()

    @pytest.mark.asyncio
    async def test_insert_failure(self) -> None:
        client = MagicMock()
        client.table.return_value.insert.return_value.execute.side_effect = RuntimeError("timeout")
        store = SupabaseChunkStore(client)

        with pytest.raises(StorageError) as exc_info:
            await store.create_chunk_record("mat-1", make_chunk(), [0.1])
        assert exc_info.value.stage == "persist_chunk"


class TestSimilaritySearch:
    @pytest.mark.asyncio
    async def test_calls_match_function(self) -> None:
        client = _client_returning([_match_row()])
        store = SupabaseChunkStore(client)

        results = await store.similarity_search(
            [0.1, 0.2],
            top_k=5,
            threshold=0.5,
            filters=RetrievalFilters(course="CSE-101", embedding_provider="mock-embedding"),
        )

        client.rpc.assert_called_once_with(
            "match_chunks",
            {
                "query_embedding": [0.1, 0.2],
                "match_count": 5,
                "similarity_threshold": 0.5,
                "filter_course": "CSE-101",
                "filter_provider": "mock-embedding",
            },
        )
        assert len(results) == 1
        hit = results[0]
        assert hit.record_id == "17"
        assert hit.similarity_score == pytest.approx(0.82)
        assert hit.chunk.document_id == "mat-1"
        assert hit.chunk.start_char == 120
        assert hit.chunk.end_char == 149
        assert hit.chunk.metadata.course == "CSE-101"

    @pytest.mark.asyncio
    async def test_results_sorted(self) -> None:
        rows = [_match_row(id=1, similarity=0.6), _match_row(id=2, similarity=0.9)]
        store = SupabaseChunkStore(_client_returning(rows))

        results = await store.similarity_search([0.1], top_k=5, threshold=0.5)

        assert [r.record_id for r in results] == ["2", "1"]

    @pytest.mark.asyncio
    async def test_no_rows(self) -> None:
        store = SupabaseChunkStore(_client_returning(None))

        assert await store.similarity_search([0.1], top_k=5, threshold=0.5) == []

    @pytest.mark.asyncio
    async def test_malformed_row_skipped(self) -> None:
        rows = [{"content": "no similarity"}, _match_row(id=3)]
        store = SupabaseChunkStore(_client_returning(rows))

        results = await store.similarity_search([0.1], top_k=5, threshold=0.5)

        assert [r.record_id for r in results] == ["3"]

    @pytest.mark.asyncio
    async def test_legacy_metadata_row_skipped(self) -> None:
        legacy = _match_row(id=4, file_metadata={"course": "CSE-101", "week": 3})
        store = SupabaseChunkStore(_client_returning([legacy, _match_row(id=5, similarity=0.6)]))

        results = await store.similarity_search([0.1], top_k=5, threshold=0.5)

        assert [r.record_id for r in results] == ["5"]

    @pytest.mark.asyncio
    async def test_other_provider_rows_dropped(self) -> None:
        other = _match_row(
            id=6,
            file_metadata=make_chunk_metadata(embedding_provider="gemini").model_dump(mode="json"),
        )
        store = SupabaseChunkStore(_client_returning([other, _match_row(id=7)]))

        results = await store.similarity_search(
            [0.1],
            top_k=5,
            threshold=0.5,
            filters=RetrievalFilters(embedding_provider="mock-embedding"),
        )

        assert [r.record_id for r in results] == ["7"]

    @pytest.mark.asyncio
    async def test_rpc_failure(self) -> None:
        client = MagicMock()
        client.rpc.return_value.execute.side_effect = RuntimeError("function match_chunks does not exist")
        store = SupabaseChunkStore(client)

        with pytest.raises(StorageError):
            await store.similarity_search([0.1], top_k=5, threshold=0.5)
