"""Per-call options for chunking, embedding and retrieval.

``RAGConfig`` is the recognised configuration surface of the pipeline.  The
default instance is resolved once at startup by
:func:`~course_rag.config.loader.load_rag_config`; individual ingestion or
retrieval calls may pass a modified copy built with :meth:`RAGConfig.with_overrides`.
"""

from __future__ import annotations

from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, model_validator

from course_rag.utils.errors import ValidationError


class RAGConfig(BaseModel):
    """Chunk sizes, provider choice and retrieval limits for one call."""

    model_config = ConfigDict(frozen=True)

    max_chunk_chars: int = Field(default=600, gt=0)
    overlap_chars: int = Field(default=100, ge=0)
    embedding_provider: str = Field(default="gemini", min_length=1)
    top_k: int = Field(default=5, ge=1)
    similarity_threshold: float = Field(default=0.5, ge=-1.0, le=1.0)
    ingestion_concurrency: int = Field(default=4, ge=1)

    @model_validator(mode="after")
    def _overlap_smaller_than_chunk(self) -> RAGConfig:
        if self.overlap_chars >= self.max_chunk_chars:
            raise ValueError(
                f"overlap_chars ({self.overlap_chars}) must be smaller than "
                f"max_chunk_chars ({self.max_chunk_chars})"
            )
        return self

    def with_overrides(self, **overrides: Any) -> RAGConfig:
        """Return a validated copy with *overrides* applied.

        ``None`` values are ignored so CLI flags that were not passed keep
        the configured default.

        Raises
        ------
        ValidationError
            If the resulting options are out of range.
        """
        updates = {key: value for key, value in overrides.items() if value is not None}
        try:
            return RAGConfig.model_validate({**self.model_dump(), **updates})
        except pydantic.ValidationError as exc:
            raise ValidationError(message=f"Invalid pipeline options: {exc}") from exc
