"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. Settings field defaults
#   2. config/config.yaml  -- static defaults checked into the repo
#   3. .env file / environment variables -- only for fields actually set
#
# Only env values that were explicitly provided override the YAML file;
# a Settings default never clobbers a value written in config.yaml.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import pydantic
import yaml

from course_rag.config.rag_config import RAGConfig
from course_rag.config.settings import Settings
from course_rag.utils.errors import ValidationError

# Settings field name -> key inside the YAML ``rag:`` section.
_RAG_FIELD_MAP = {
    "chunk_max_chars": "max_chunk_chars",
    "chunk_overlap_chars": "overlap_chars",
    "embedding_provider": "embedding_provider",
    "rag_top_k": "top_k",
    "rag_similarity_threshold": "similarity_threshold",
    "ingestion_concurrency": "ingestion_concurrency",
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge explicitly-set environment Settings on top.

    Args:
        path: Path to the YAML configuration file.  A missing file is fine.
        settings: Settings to overlay.  A fresh ``Settings()`` when omitted.

    Returns:
        Fully resolved configuration dictionary with a ``rag`` section
        holding every :class:`RAGConfig` field.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    explicit = settings.model_fields_set

    base = {
        "rag": {
            rag_key: getattr(settings, field)
            for field, rag_key in _RAG_FIELD_MAP.items()
        },
        "logging": {"level": settings.log_level},
    }
    env_overrides = {
        "rag": {
            rag_key: getattr(settings, field)
            for field, rag_key in _RAG_FIELD_MAP.items()
            if field in explicit
        },
    }
    if "log_level" in explicit:
        env_overrides["logging"] = {"level": settings.log_level}

    _deep_merge(base, yaml_config)
    _deep_merge(base, env_overrides)
    return base


def load_rag_config(path: str = "config/config.yaml", settings: Settings | None = None) -> RAGConfig:
    """Resolve the layered configuration into a validated :class:`RAGConfig`.

    Raises:
        ValidationError: If the merged ``rag`` section is out of range.
    """
    try:
        return RAGConfig(**load_config(path, settings)["rag"])
    except pydantic.ValidationError as exc:
        raise ValidationError(message=f"Invalid configuration in {path}: {exc}", stage="config") from exc


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
