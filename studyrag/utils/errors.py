"""Custom exception hierarchy for studyrag.

All application exceptions inherit from :class:`StudyRAGError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "chromadb", "pymupdf") caused the failure.

The hierarchy is organized by pipeline stage:

    StudyRAGError  (base -- catch-all for any studyrag error)
    +-- UnsupportedTypeError     (extraction: file type not pdf/docx/txt)
    +-- ExtractionError          (extraction: decode / parse failure)
    +-- RAGError                 (embedding or vector-index failure)
    |   +-- EmbeddingError       (embedding provider call failed)
    |   +-- IndexUnavailableError (vector index unreachable)
    +-- BatchFailureError        (embed-and-store aborted on a batch)
    +-- ProcessingTimeoutError   (per-document deadline expired)
    +-- IngestionCancelledError  (pipeline task cancelled, e.g. shutdown)
    +-- ConfigurationError       (startup / missing config)

"No content" is deliberately absent: an empty document is a valid outcome
of ingestion (see :class:`~studyrag.models.document.IngestionOutcome`),
not a failure.
"""


class StudyRAGError(Exception):
    """Base exception for all studyrag errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[chromadb] Collection unreachable``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Extraction errors
# ---------------------------------------------------------------------------

class UnsupportedTypeError(StudyRAGError):
    """Raised when a document's declared type is not pdf, docx or txt."""

    def __init__(
        self,
        message: str = "Unsupported document type",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(StudyRAGError):
    """Raised when a supported file cannot be decoded into text.

    The underlying library exception is chained via ``raise ... from``.
    """

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# RAG / vector-index errors
# ---------------------------------------------------------------------------

class RAGError(StudyRAGError):
    """Raised when a RAG operation fails (embedding or vector index)."""

    def __init__(
        self,
        message: str = "RAG operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(RAGError):
    """Raised when the embedding provider fails or rate-limits a call."""

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IndexUnavailableError(RAGError):
    """Raised when the vector index cannot be reached.

    The client never retries internally; retry policy belongs to callers.
    """

    def __init__(
        self,
        message: str = "Vector index is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Ingestion orchestration errors
# ---------------------------------------------------------------------------

class BatchFailureError(StudyRAGError):
    """Raised when embed-and-store aborts on its first failing batch.

    ``batch_index`` is 1-based, so a failure in "batch 3 of 5" carries
    ``batch_index == 3`` and ``batch_total == 5``.  Batches before
    ``batch_index`` were stored; the failing batch and all later ones
    were not.
    """

    def __init__(
        self,
        batch_index: int,
        batch_total: int,
        cause: BaseException,
        provider_name: str | None = None,
    ) -> None:
        self._batch_index = batch_index
        self._batch_total = batch_total
        self._cause = cause
        super().__init__(
            message=f"Batch {batch_index} of {batch_total} failed: {cause}",
            provider_name=provider_name,
        )

    @property
    def batch_index(self) -> int:
        return self._batch_index

    @property
    def batch_total(self) -> int:
        return self._batch_total

    @property
    def cause(self) -> BaseException:
        return self._cause


class ProcessingTimeoutError(StudyRAGError):
    """Raised when a document's pipeline exceeds its adaptive deadline."""

    def __init__(
        self,
        timeout_seconds: float,
        message: str | None = None,
        provider_name: str | None = None,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        super().__init__(
            message=message or f"Processing exceeded {timeout_seconds:.0f}s deadline",
            provider_name=provider_name,
        )

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds


class IngestionCancelledError(StudyRAGError):
    """Recorded when a running ingestion is cancelled from outside, e.g. at shutdown."""

    def __init__(
        self,
        message: str = "Ingestion cancelled before completion",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(StudyRAGError):
    """Raised when configuration is invalid or a provider cannot be built."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
