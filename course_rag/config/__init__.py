"""Configuration module -- exports Settings, RAGConfig and the YAML loader."""

from course_rag.config.loader import load_config, load_rag_config
from course_rag.config.rag_config import RAGConfig
from course_rag.config.settings import Settings

__all__ = ["RAGConfig", "Settings", "load_config", "load_rag_config"]
