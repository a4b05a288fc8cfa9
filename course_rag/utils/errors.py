"""Custom exception hierarchy for course-rag.

All application exceptions inherit from :class:`CourseRAGError`, which
carries an optional ``provider_name`` (which embedding provider or store
caused the failure) and an optional ``stage`` (which pipeline step failed,
e.g. ``"create_document"`` or ``"similarity_search"``).

    CourseRAGError  (base)
    +-- ValidationError              (malformed input text, metadata or config)
    +-- ConfigurationError           (unknown provider, missing credentials)
    +-- ProviderUnavailableError     (network / auth / rate limit -- retryable)
    +-- ProviderResponseInvalidError (vector failed the shape contract)
    +-- StorageError                 (persistence or similarity backend failure)
    +-- IngestionAbortedError        (document record could not be persisted)
    +-- OperationTimeoutError        (caller deadline exceeded)

Callers retry only on ProviderUnavailableError; everything else is either
the caller's fault or is reported as-is.
"""

from __future__ import annotations

from typing import Any


class CourseRAGError(Exception):
    """Base exception for all course-rag errors.

    The ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[gemini] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
        stage: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        self._stage = stage
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    @property
    def stage(self) -> str | None:
        return self._stage

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Caller errors
# ---------------------------------------------------------------------------

class ValidationError(CourseRAGError):
    """Raised for empty or malformed input text, metadata or options.

    Never retried -- the same input will fail the same way.
    """

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
        stage: str | None = "validate",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, stage=stage)


class ConfigurationError(CourseRAGError):
    """Raised when configuration is invalid or a provider name is unknown."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, stage=stage)


# ---------------------------------------------------------------------------
# Embedding provider errors
# ---------------------------------------------------------------------------

class ProviderUnavailableError(CourseRAGError):
    """Raised when an embedding provider cannot be reached or rejects auth.

    Transient by definition: the embedding service retries it with
    exponential backoff for a bounded number of attempts.
    """

    def __init__(
        self,
        message: str = "Embedding provider is unavailable",
        provider_name: str | None = None,
        stage: str | None = "embed",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, stage=stage)


class ProviderResponseInvalidError(CourseRAGError):
    """Raised when a provider answers but the vector is empty or malformed."""

    def __init__(
        self,
        message: str = "Embedding provider returned an invalid vector",
        provider_name: str | None = None,
        stage: str | None = "embed",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, stage=stage)


# ---------------------------------------------------------------------------
# Storage / orchestration errors
# ---------------------------------------------------------------------------

class StorageError(CourseRAGError):
    """Raised when the document/vector store fails a write or a search."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, stage=stage)


class IngestionAbortedError(CourseRAGError):
    """Raised when ingestion cannot start because the document record failed.

    Chunk-level failures never raise this; they are counted instead.
    """

    def __init__(
        self,
        message: str = "Ingestion aborted",
        provider_name: str | None = None,
        stage: str | None = "create_document",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, stage=stage)


class OperationTimeoutError(CourseRAGError):
    """Raised when a caller-supplied deadline expires mid-operation.

    ``partial_result`` holds whatever was completed before the deadline
    (an :class:`~course_rag.models.rag.IngestionResult` for ingestion).
    """

    def __init__(
        self,
        message: str = "Operation timed out",
        provider_name: str | None = None,
        stage: str | None = None,
        partial_result: Any = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, stage=stage)
        self._partial_result = partial_result

    @property
    def partial_result(self) -> Any:
        return self._partial_result
