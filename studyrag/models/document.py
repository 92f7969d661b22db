"""Document lifecycle models for the ingestion pipeline.

A :class:`Document` is created externally when a file is uploaded and is
only ever mutated by the ingestion orchestrator's status transitions:

    uploaded -> processing -> ready
                           -> error

``ready`` and ``error`` are terminal.  When a document ends in ``error``,
the :class:`IngestionStage` that failed is recorded alongside it so the
failure can be diagnosed without re-running the pipeline.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DocumentStatus(str, Enum):
    """Lifecycle status of an uploaded document."""

    UPLOADED = "uploaded"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.READY, DocumentStatus.ERROR)


class IngestionStage(str, Enum):
    """Pipeline stage at which an ingestion failed."""

    EXTRACTION = "extraction"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class IngestionOutcome(str, Enum):
    """How an ingestion run ended.

    ``NO_CONTENT`` is a successful outcome: the file was readable but held
    no text (e.g. a scanned PDF without a text layer).
    """

    INDEXED = "indexed"
    NO_CONTENT = "no_content"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Document -- the unit of ingestion.
# ---------------------------------------------------------------------------
class Document(BaseModel):
    """An uploaded file awaiting or having completed ingestion."""

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(description="Unique identifier of the document.")
    workspace_id: str = Field(description="Workspace that owns the document; the index namespace.")
    file_path: str = Field(description="Readable local path of the uploaded file.")
    declared_type: str = Field(
        default="",
        description='Declared type: "pdf", "docx", "txt", a MIME type, or empty to use the extension.',
    )
    file_name: str = Field(
        default="",
        description="Original file name, stored as passage ``source`` metadata.",
    )
    status: DocumentStatus = Field(default=DocumentStatus.UPLOADED)


class DocumentStatusRecord(BaseModel):
    """A document's status row as persisted by the status store."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    workspace_id: str
    status: DocumentStatus
    error_stage: IngestionStage | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# IngestionResult -- what one ingestion run produced.
# ---------------------------------------------------------------------------
class IngestionResult(BaseModel):
    """Summary of a single document ingestion run.

    Returned by :meth:`IngestionService.ingest` and printed by the CLI.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(description="Identifier of the ingested document.")
    workspace_id: str = Field(description="Namespace the passages were written to.")
    status: DocumentStatus = Field(description="Terminal status the document ended in.")
    outcome: IngestionOutcome = Field(description="Indexed, no content, or failed.")
    passages_stored: int = Field(default=0, ge=0, description="Passages embedded and upserted.")
    batches_stored: int = Field(default=0, ge=0, description="Embedding batches fully stored.")
    text_length: int = Field(default=0, ge=0, description="Characters of extracted text.")
    error_stage: IngestionStage | None = Field(
        default=None, description="Stage that failed, when status is error."
    )
    error_message: str | None = Field(default=None, description="Failure description.")
    timeout_seconds: float = Field(
        default=0.0, ge=0.0, description="Adaptive deadline applied to this run."
    )
    ingestion_time: float = Field(
        default=0.0, ge=0.0, description="Wall-clock time in seconds for the run."
    )
