"""Chunk store implementations.

Two implementations of IChunkStore:
    1. SupabaseChunkStore -- hosted Postgres + pgvector.  The default.
    2. ChromaDBChunkStore -- local ChromaDB collection + SQLite documents.
"""

from course_rag.providers.store.chromadb_store import ChromaDBChunkStore
from course_rag.providers.store.supabase_store import SupabaseChunkStore

__all__ = ["ChromaDBChunkStore", "SupabaseChunkStore"]
