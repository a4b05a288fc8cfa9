# =============================================================================
# course_rag/cli/ingest.py -- Operator CLI for the course document corpus
# =============================================================================
#
# Supported subcommands:
#
#   ingest    -- Chunk, embed and store a plain-text course document
#   query     -- Retrieve the chunks most similar to a question
#   providers -- List embedding providers and the configured store
#
# Usage examples:
#   python -m course_rag.cli ingest --file week3_deadlocks.txt \
#       --title "Deadlocks" --course CSE-101 --week 3 --tag theory
#   python -m course_rag.cli query "How do you prevent deadlock?" --top-k 3
#   python -m course_rag.cli providers
# =============================================================================

"""Standalone CLI for ingesting and querying course documents.

Usage::

    python -m course_rag.cli ingest --file notes.txt --title "Deadlocks"

    python -m course_rag.cli query "What causes deadlock?"

    python -m course_rag.cli providers
"""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path
from typing import Any

import pydantic

from course_rag.config.settings import Settings
from course_rag.models.rag import CourseDocument, DocumentMetadata, RetrievalFilters
from course_rag.utils.errors import CourseRAGError, OperationTimeoutError, ValidationError
from course_rag.utils.logging import configure_logging


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_ingest(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Ingest one plain-text file."""
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    text = path.read_text(encoding="utf-8")
    try:
        metadata = DocumentMetadata(
            title=args.title,
            course=args.course,
            topic=args.topic,
            week_number=args.week,
            tags=args.tags or [],
            file_name=path.name,
            content_type=mimetypes.guess_type(path.name)[0] or "text/plain",
            size_bytes=path.stat().st_size,
            storage_uri=str(path.resolve()),
        )
    except pydantic.ValidationError as exc:
        raise ValidationError(message=f"Invalid document metadata: {exc}") from exc
    config = components["rag_config"].with_overrides(
        embedding_provider=args.provider,
        max_chunk_chars=args.max_chunk_chars,
        overlap_chars=args.overlap_chars,
        ingestion_concurrency=args.concurrency,
    )

    print(f"Ingesting: {metadata.title}")
    print(f"  File: {path} ({metadata.size_bytes} bytes)")

    service = components["ingestion_service"]
    try:
        result = await service.ingest(
            CourseDocument(metadata=metadata, text=text),
            config=config,
            timeout=args.timeout,
        )
    except OperationTimeoutError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        partial = exc.partial_result
        if partial is not None:
            print(f"  Stored before deadline: {partial.succeeded_count}/{partial.chunk_count}")
        return 1

    print("\nIngestion complete:")
    print(f"  Document ID:    {result.document_id}")
    print(f"  Chunks stored:  {result.succeeded_count}/{result.chunk_count}")
    print(f"  Provider:       {result.embedding_provider}")
    print(f"  Time:           {result.ingestion_time:.2f}s")
    for outcome in result.outcomes:
        if not outcome.succeeded and outcome.error is not None:
            print(f"  ! chunk {outcome.chunk_index}: {outcome.error.error_type}: {outcome.error.message}")
    return 0 if not result.is_partial else 2


async def _handle_query(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Retrieve and print the best-matching chunks for a question."""
    filters = RetrievalFilters(course=args.course, topic=args.topic, week_number=args.week)
    response = await components["retrieval_service"].retrieve(
        args.text,
        top_k=args.top_k,
        provider_name=args.provider,
        similarity_threshold=args.threshold,
        filters=filters,
        timeout=args.timeout,
    )

    if response.degraded:
        print(f"Search unavailable ({response.error.error_type}): {response.error.message}")
        return 1
    if not response.results:
        print("No matching chunks.")
        return 0

    for rank, result in enumerate(response.results, start=1):
        print(f"{rank}. [{result.similarity_score:.3f}] {result.citation}")
        snippet = result.chunk.content.replace("\n", " ")
        print(f"   {snippet[:200]}{'...' if len(snippet) > 200 else ''}")
    return 0


def _handle_providers(components: dict[str, Any]) -> int:
    """Show which embedding providers and store are configured."""
    registry = components["embedding_registry"]
    default = components["rag_config"].embedding_provider
    store = components["store"]

    print("Embedding providers")
    print("=" * 40)
    for name in registry.names():
        provider = registry.get(name)
        marker = "*" if name == default else " "
        status = "available" if provider.is_available() else "unavailable"
        print(f" {marker} {name:<10} dim={provider.get_dimension():<6} {status}")
    print(f"\nStore: {store.get_provider_name()} ({'available' if store.is_available() else 'unavailable'})")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the course-rag CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m course_rag.cli",
        description="Ingest and query course documents.",
    )
    parser.add_argument("--config", default="config/config.yaml", help="YAML config file")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- ingest --
    ingest_parser = subparsers.add_parser("ingest", help="Ingest a plain-text document")
    ingest_parser.add_argument("--file", required=True, help="Path to the text file")
    ingest_parser.add_argument("--title", required=True, help="Document title")
    ingest_parser.add_argument("--course", help="Course reference, e.g. CSE-101")
    ingest_parser.add_argument("--topic", help="Topic within the course")
    ingest_parser.add_argument("--week", type=int, help="Teaching week number")
    ingest_parser.add_argument(
        "--tag", action="append", dest="tags", help="Tag (repeatable)"
    )
    ingest_parser.add_argument("--provider", help="Embedding provider name")
    ingest_parser.add_argument(
        "--max-chunk-chars", type=int, dest="max_chunk_chars", help="Chunk size limit"
    )
    ingest_parser.add_argument(
        "--overlap-chars", type=int, dest="overlap_chars", help="Overlap between chunks"
    )
    ingest_parser.add_argument(
        "--concurrency", type=int, help="Chunks embedded in parallel"
    )
    ingest_parser.add_argument("--timeout", type=float, help="Deadline in seconds")

    # -- query --
    query_parser = subparsers.add_parser("query", help="Retrieve chunks for a question")
    query_parser.add_argument("text", help="Question text")
    query_parser.add_argument("--top-k", type=int, dest="top_k", help="Maximum results")
    query_parser.add_argument("--threshold", type=float, help="Minimum similarity score")
    query_parser.add_argument("--provider", help="Embedding provider name")
    query_parser.add_argument("--course", help="Restrict to a course")
    query_parser.add_argument("--topic", help="Restrict to a topic")
    query_parser.add_argument("--week", type=int, help="Restrict to a teaching week")
    query_parser.add_argument("--timeout", type=float, help="Deadline in seconds")

    # -- providers --
    subparsers.add_parser("providers", help="List configured providers")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _dispatch(args: argparse.Namespace, components: dict[str, Any]) -> int:
    try:
        if args.command == "ingest":
            return await _handle_ingest(args, components)
        if args.command == "query":
            return await _handle_query(args, components)
        return _handle_providers(components)
    finally:
        await components["http_client"].aclose()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parses the subcommand, builds the pipeline from environment settings
    and the YAML config, and dispatches to the handler.  Typed pipeline
    errors are printed to stderr with exit code 1.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )

    # Deferred so `--help` works without chromadb/supabase installed.
    from course_rag.main import build_pipeline

    try:
        components = build_pipeline(app_settings, config_path=args.config)
        exit_code = asyncio.run(_dispatch(args, components))
    except CourseRAGError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
