"""course-rag composition root.

Wires together configuration, embedding providers, the chunk store and the
ingestion / retrieval services.  Nothing here runs at import time: callers
(the CLI, an application server, tests) build the pipeline explicitly with
:func:`build_pipeline` and keep the returned components for their lifetime.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from course_rag.config.loader import load_rag_config
from course_rag.config.settings import Settings
from course_rag.interfaces.chunk_store import IChunkStore
from course_rag.providers.embedding.registry import build_embedding_registry
from course_rag.providers.store.chromadb_store import ChromaDBChunkStore
from course_rag.providers.store.supabase_store import SupabaseChunkStore
from course_rag.services.embedding_service import EmbeddingService
from course_rag.services.ingestion.chunker import TextChunker
from course_rag.services.ingestion.ingestion_service import IngestionService
from course_rag.services.retrieval_service import RetrievalService
from course_rag.utils.errors import ConfigurationError
from course_rag.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Store selection
# ---------------------------------------------------------------------------


def _build_store(app_settings: Settings) -> IChunkStore:
    """Construct the chunk store named by ``STORE_BACKEND``.

    ``supabase`` (default) needs ``SUPABASE_URL`` and ``SUPABASE_KEY``;
    ``chromadb`` runs on local disk.
    """
    backend = app_settings.store_backend.lower()
    if backend == "supabase":
        return SupabaseChunkStore.from_settings(app_settings)
    if backend == "chromadb":
        return ChromaDBChunkStore(
            persist_directory=app_settings.chromadb_persist_dir,
            collection_name=app_settings.chromadb_collection,
            document_db_path=app_settings.document_db_path,
        )
    raise ConfigurationError(
        message=f"Unknown STORE_BACKEND {app_settings.store_backend!r} (expected supabase or chromadb)"
    )


# ---------------------------------------------------------------------------
# Pipeline assembly
# ---------------------------------------------------------------------------


def build_pipeline(
    custom_settings: Settings | None = None,
    config_path: str = "config/config.yaml",
) -> dict[str, Any]:
    """Construct and return all pipeline services with injected dependencies.

    Parameters
    ----------
    custom_settings:
        Application settings.  A fresh ``Settings()`` (env + ``.env``) when
        not provided.
    config_path:
        YAML file layered under explicitly-set environment values.

    Returns
    -------
    dict
        Components keyed by role name: ``settings``, ``rag_config``,
        ``http_client``, ``embedding_registry``, ``embedding_service``,
        ``store``, ``chunker``, ``ingestion_service``, ``retrieval_service``.

    Raises
    ------
    ConfigurationError
        Unknown store backend, missing store credentials, or a default
        embedding provider that is not configured.
    ValidationError
        The YAML config or explicitly-set environment values are out of range.
    """
    s = custom_settings or Settings()
    rag_config = load_rag_config(config_path, settings=s)

    http_client = httpx.AsyncClient(timeout=httpx.Timeout(s.embedding_request_timeout))
    registry = build_embedding_registry(s, http_client=http_client)
    if rag_config.embedding_provider not in registry:
        raise ConfigurationError(
            message=(
                f"Default embedding provider {rag_config.embedding_provider!r} is not configured "
                f"(available: {', '.join(registry.names()) or 'none'})"
            ),
            provider_name=rag_config.embedding_provider,
        )

    embedding_service = EmbeddingService(
        registry=registry,
        default_provider=rag_config.embedding_provider,
        max_attempts=s.embedding_max_attempts,
        retry_base_delay=s.embedding_retry_base_delay,
    )
    store = _build_store(s)
    chunker = TextChunker(
        max_chunk_chars=rag_config.max_chunk_chars,
        overlap_chars=rag_config.overlap_chars,
    )

    ingestion_service = IngestionService(
        chunker=chunker,
        embedding_service=embedding_service,
        store=store,
        config=rag_config,
    )
    retrieval_service = RetrievalService(
        embedding_service=embedding_service,
        store=store,
        config=rag_config,
    )

    _logger.info(
        "pipeline_built",
        embedding_provider=rag_config.embedding_provider,
        embedding_providers=registry.names(),
        store=store.get_provider_name(),
        max_chunk_chars=rag_config.max_chunk_chars,
        overlap_chars=rag_config.overlap_chars,
    )

    return {
        "settings": s,
        "rag_config": rag_config,
        "http_client": http_client,
        "embedding_registry": registry,
        "embedding_service": embedding_service,
        "store": store,
        "chunker": chunker,
        "ingestion_service": ingestion_service,
        "retrieval_service": retrieval_service,
    }
