"""Utility modules for studyrag.

- **errors** -- Domain exception hierarchy rooted at StudyRAGError; each
  pipeline stage raises its own subclass so the orchestrator can record
  which stage failed.
- **concurrency** -- Semaphore-throttled fan-out with per-call deadlines,
  used by the retrieval aggregator's expansion probes.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **text_normalizer** -- Whitespace normalization, spaced-text repair for
  exploded PDF output, and passage sanitation before embedding.
"""

from studyrag.utils.concurrency import parallel_query, throttled_gather
from studyrag.utils.errors import (
    BatchFailureError,
    ConfigurationError,
    EmbeddingError,
    ExtractionError,
    IndexUnavailableError,
    IngestionCancelledError,
    ProcessingTimeoutError,
    RAGError,
    StudyRAGError,
    UnsupportedTypeError,
)
from studyrag.utils.logging import configure_logging, get_logger
from studyrag.utils.text_normalizer import normalize_whitespace, repair_spaced_text

__all__ = [
    "BatchFailureError",
    "ConfigurationError",
    "EmbeddingError",
    "ExtractionError",
    "IndexUnavailableError",
    "IngestionCancelledError",
    "ProcessingTimeoutError",
    "RAGError",
    "StudyRAGError",
    "UnsupportedTypeError",
    "configure_logging",
    "get_logger",
    "normalize_whitespace",
    "parallel_query",
    "repair_spaced_text",
    "throttled_gather",
]
