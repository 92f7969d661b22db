"""Abstract base class for document status persistence.

The relational store owns documents and workspaces; the ingestion
orchestrator only reads and writes a document's ``status`` field (plus
the failure stage and timestamps).  This interface is that narrow slice.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from studyrag.models.document import DocumentStatus, DocumentStatusRecord, IngestionStage


class IDocumentStatusStore(ABC):
    """Contract for persisting document lifecycle status."""

    @abstractmethod
    async def set_status(
        self,
        document_id: str,
        workspace_id: str,
        status: DocumentStatus,
        error_stage: IngestionStage | None = None,
        error_message: str | None = None,
    ) -> None:
        """Record *status* for a document, updating its ``updated_at``.

        Parameters
        ----------
        document_id:
            Document whose status changes.
        workspace_id:
            Owning workspace, stored on first write.
        status:
            New status.
        error_stage:
            Failed stage; only meaningful with ``DocumentStatus.ERROR`` and
            cleared on any other status.
        error_message:
            Failure description; cleared like ``error_stage``.
        """

    @abstractmethod
    async def get_status(self, document_id: str) -> DocumentStatusRecord | None:
        """Return the stored record, or ``None`` for an unknown document."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
