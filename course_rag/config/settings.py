"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (priority order):
#
#   1. **Environment variables** -- e.g. GEMINI_API_KEY=abc123
#   2. **.env file** -- key=value lines in the project root .env file
#
# Field `gemini_api_key` maps to env var `GEMINI_API_KEY` automatically.
# Defaults apply when neither source sets a value.
#
# A Settings instance is built once at startup (see course_rag.main) and
# passed explicitly into every factory.  Nothing in the package reads a
# module-level settings singleton.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """course-rag process settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding providers ===
    # Empty key = "not configured"; build_embedding_registry() skips it.
    embedding_provider: str = "gemini"
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_embedding_model: str = "text-embedding-004"
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible hosts (TogetherAI, etc.)
    openai_embedding_model: str = ""
    ollama_base_url: str = "http://localhost:11434"
    ollama_embedding_model: str = "nomic-embed-text"
    embedding_request_timeout: float = 30.0
    embedding_max_attempts: int = 3
    embedding_retry_base_delay: float = 0.5

    # === Storage ===
    store_backend: str = "supabase"  # supabase | chromadb
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_documents_table: str = "materials"
    supabase_chunks_table: str = "chunks"
    supabase_match_function: str = "match_chunks"
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "course_chunks"
    document_db_path: str = "data/documents.db"

    # === Chunking / retrieval defaults (the RAGConfig surface) ===
    chunk_max_chars: int = 600
    chunk_overlap_chars: int = 100
    rag_top_k: int = 5
    rag_similarity_threshold: float = 0.5
    ingestion_concurrency: int = 4

    # === App ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_configured_embedding_providers(self) -> list[str]:
        """Return embedding provider names whose credentials are configured."""
        providers: list[str] = []
        if self.gemini_api_key:
            providers.append("gemini")
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
