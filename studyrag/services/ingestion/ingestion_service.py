"""Orchestrator for the per-document ingestion pipeline.

Pipeline stages: **extract -> chunk -> embed -> store**.

The :class:`IngestionService` implements the **Orchestrator pattern**: it
coordinates the text extractor, chunker and embedding batcher, plus the
injected embedding provider, vector index and status store, without any
of them knowing about each other.

Every document follows one state machine::

    uploaded -> processing -> ready
                           -> error

``processing`` is recorded before any work starts.  ``ready`` is recorded
only after every batch is stored (or when the file held no text at all).
Any exception in extraction, chunking or embedding moves the document to
``error`` with the failing :class:`IngestionStage` stored next to it.

The whole pipeline is raced against the adaptive deadline from
:meth:`EmbeddingBatcher.estimate_timeout`.  The passage count is unknown
until the text is chunked, so extraction and chunking run under the
baseline deadline and embed-and-store gets whatever remains of the
adaptive estimate.  An expired deadline cancels the in-flight work and
is recorded as stage ``timeout``.

Cancelling the deadline does not stop an index write already running in
a worker thread.  Before partial vectors are withdrawn, those writes are
awaited so none of them lands after the delete.  Cancelling the pipeline
task itself (shutdown) records stage ``cancelled`` the same way and then
re-raises.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

import structlog

from studyrag.models.document import (
    Document,
    DocumentStatus,
    IngestionOutcome,
    IngestionResult,
    IngestionStage,
)
from studyrag.models.rag import Passage
from studyrag.utils.errors import (
    BatchFailureError,
    IngestionCancelledError,
    ProcessingTimeoutError,
)
from studyrag.utils.logging import document_log_context
from studyrag.utils.text_normalizer import sanitize_passage_text

if TYPE_CHECKING:
    from studyrag.interfaces.document_status_store import IDocumentStatusStore
    from studyrag.interfaces.embedding_provider import IEmbeddingProvider
    from studyrag.interfaces.vector_index_provider import IVectorIndexProvider
    from studyrag.services.ingestion.chunker import TextChunker
    from studyrag.services.ingestion.embedding_batcher import EmbeddingBatcher
    from studyrag.services.ingestion.text_extractor import TextExtractor

logger = structlog.get_logger(logger_name=__name__)

# Passages shorter than this carry no retrievable meaning.
MIN_PASSAGE_CHARS = 10


class _PipelineProgress:
    """Mutable record of how far one document's pipeline got."""

    def __init__(self) -> None:
        self.stage = IngestionStage.EXTRACTION
        self.text_length = 0
        self.passages_stored = 0
        self.timeout = 0.0
        # Upserts handed to the index; they can outlive a cancelled pipeline.
        self.pending_writes: set[asyncio.Task[int]] = set()


class IngestionService:
    """Drives one document at a time through extract -> chunk -> embed -> store.

    Independent documents may be ingested concurrently; the service keeps
    no per-document state between calls.

    Parameters
    ----------
    extractor:
        Converts the uploaded file into text.
    chunker:
        Splits text into overlapping passages.
    batcher:
        Embeds and upserts passages batch by batch, and supplies the
        adaptive timeout estimate.
    embedding_provider:
        Generates passage vectors.
    vector_index:
        Workspace-scoped vector storage.
    status_store:
        Persists document status transitions.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        chunker: TextChunker,
        batcher: EmbeddingBatcher,
        embedding_provider: IEmbeddingProvider,
        vector_index: IVectorIndexProvider,
        status_store: IDocumentStatusStore,
    ) -> None:
        self._extractor = extractor
        self._chunker = chunker
        self._batcher = batcher
        self._embedding_provider = embedding_provider
        self._vector_index = vector_index
        self._status_store = status_store
        # Strong references so background tasks are not garbage-collected.
        self._background_tasks: set[asyncio.Task[IngestionResult]] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(self, document: Document) -> IngestionResult:
        """Ingest *document* and return once it reaches a terminal status.

        Never raises for pipeline failures: those are reported through the
        returned :class:`IngestionResult` and the status store.  Only a
        failing status store propagates.
        """
        start = time.monotonic()
        await self._transition(document, document.status, DocumentStatus.PROCESSING)
        return await self._run_pipeline(document, start)

    async def start_ingestion(self, document: Document) -> asyncio.Task[IngestionResult]:
        """Record ``processing`` now and run the pipeline in the background.

        Returns
        -------
        asyncio.Task
            Resolves to the :class:`IngestionResult` of the run.
        """
        start = time.monotonic()
        await self._transition(document, document.status, DocumentStatus.PROCESSING)
        task = asyncio.create_task(
            self._run_pipeline(document, start),
            name=f"ingest-{document.document_id}",
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def delete_document_vectors(self, document_id: str, workspace_id: str) -> int:
        """Remove every stored passage of a document, best effort.

        A failing vector index is logged and absorbed so that deleting the
        document record is never blocked by it; orphaned vectors are the
        tolerated inconsistency.

        Returns
        -------
        int
            Number of entries deleted (0 when cleanup failed).
        """
        try:
            deleted = await self._vector_index.delete_by_filter(
                workspace_id, {"document_id": document_id}
            )
        except Exception as exc:
            logger.warning(
                "vector_cleanup_failed",
                document_id=document_id,
                workspace_id=workspace_id,
                error=str(exc),
            )
            return 0

        logger.info(
            "document_vectors_deleted",
            document_id=document_id,
            workspace_id=workspace_id,
            deleted=deleted,
        )
        return deleted

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_pipeline(self, document: Document, start: float) -> IngestionResult:
        progress = _PipelineProgress()
        with document_log_context(document.document_id, document.workspace_id):
            try:
                return await self._run_stages(document, start, progress)
            except asyncio.CancelledError:
                # Shielded so a second cancel cannot leave the document in processing.
                logger.warning(
                    "ingestion_cancelled",
                    document_id=document.document_id,
                    stage=progress.stage.value,
                )
                await asyncio.shield(
                    self._fail(
                        document,
                        progress,
                        start,
                        progress.timeout,
                        IngestionStage.CANCELLED,
                        IngestionCancelledError(),
                    )
                )
                raise

    async def _run_stages(
        self, document: Document, start: float, progress: _PipelineProgress
    ) -> IngestionResult:
        timeout = progress.timeout = self._batcher.timeout_baseline_seconds

        try:
            passages = await self._within(
                self._extract_and_chunk(document, progress), timeout
            )

            if not passages:
                logger.info(
                    "ingestion_no_content",
                    document_id=document.document_id,
                    text_length=progress.text_length,
                )
                await self._transition(document, DocumentStatus.PROCESSING, DocumentStatus.READY)
                return self._result(
                    document,
                    progress,
                    start,
                    timeout,
                    status=DocumentStatus.READY,
                    outcome=IngestionOutcome.NO_CONTENT,
                )

            timeout = progress.timeout = self._batcher.estimate_timeout(len(passages))
            remaining = max(0.0, timeout - (time.monotonic() - start))
            progress.stage = IngestionStage.EMBEDDING
            await self._within(self._store(document, passages, progress), remaining, timeout)

        except ProcessingTimeoutError as exc:
            logger.error(
                "ingestion_timeout",
                document_id=document.document_id,
                workspace_id=document.workspace_id,
                stage=progress.stage.value,
                timeout_seconds=round(exc.timeout_seconds, 1),
            )
            return await self._fail(document, progress, start, timeout, IngestionStage.TIMEOUT, exc)

        except Exception as exc:
            logger.error(
                "ingestion_failed",
                document_id=document.document_id,
                workspace_id=document.workspace_id,
                stage=progress.stage.value,
                error=str(exc),
                exc_info=True,
            )
            return await self._fail(document, progress, start, timeout, progress.stage, exc)

        await self._transition(document, DocumentStatus.PROCESSING, DocumentStatus.READY)
        result = self._result(
            document,
            progress,
            start,
            timeout,
            status=DocumentStatus.READY,
            outcome=IngestionOutcome.INDEXED,
        )
        logger.info(
            "ingestion_complete",
            document_id=document.document_id,
            workspace_id=document.workspace_id,
            passages=result.passages_stored,
            batches=result.batches_stored,
            elapsed_s=round(result.ingestion_time, 2),
        )
        return result

    async def _extract_and_chunk(
        self, document: Document, progress: _PipelineProgress
    ) -> list[Passage]:
        progress.stage = IngestionStage.EXTRACTION
        text = await self._extractor.extract(document.file_path, document.declared_type)
        progress.text_length = len(text)

        progress.stage = IngestionStage.CHUNKING
        texts = await asyncio.to_thread(self._chunker.split, text)
        return self._build_passages(document, texts)

    async def _store(
        self, document: Document, passages: list[Passage], progress: _PipelineProgress
    ) -> None:
        # Re-ingestion: a shorter new version must not leave stale tail passages.
        await self._vector_index.delete_by_filter(
            document.workspace_id, {"document_id": document.document_id}
        )
        progress.passages_stored = await self._batcher.embed_and_store(
            passages,
            self._embedding_provider,
            self._vector_index,
            document.workspace_id,
            in_flight=progress.pending_writes,
        )

    @staticmethod
    async def _within(coro: Any, timeout: float, reported: float | None = None) -> Any:
        """Await *coro*, cancelling it and raising a timeout once *timeout* elapses."""
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ProcessingTimeoutError(
                timeout_seconds=reported if reported is not None else timeout
            ) from exc

    @staticmethod
    def _build_passages(document: Document, texts: list[str]) -> list[Passage]:
        """Sanitize chunk texts, drop unusable ones, then number the rest."""
        cleaned = [sanitize_passage_text(t) for t in texts]
        kept = [
            t for t in cleaned
            if len(t) >= MIN_PASSAGE_CHARS and any(c.isalnum() for c in t)
        ]
        if len(kept) < len(texts):
            logger.debug(
                "passages_dropped",
                document_id=document.document_id,
                dropped=len(texts) - len(kept),
            )

        source = document.file_name or document.file_path
        return [
            Passage(
                document_id=document.document_id,
                workspace_id=document.workspace_id,
                ordinal=ordinal,
                total=len(kept),
                text=text,
                source=source,
            )
            for ordinal, text in enumerate(kept)
        ]

    # ------------------------------------------------------------------
    # Status handling
    # ------------------------------------------------------------------

    async def _fail(
        self,
        document: Document,
        progress: _PipelineProgress,
        start: float,
        timeout: float,
        stage: IngestionStage,
        exc: Exception,
    ) -> IngestionResult:
        # Batches stored before the failure are withdrawn; the document is error either way.
        # A write still running in the index (e.g. a worker thread) must land first,
        # or it would re-add vectors after the delete.
        if isinstance(exc, (BatchFailureError, ProcessingTimeoutError, IngestionCancelledError)):
            if progress.pending_writes:
                await asyncio.gather(*progress.pending_writes, return_exceptions=True)
            await self.delete_document_vectors(document.document_id, document.workspace_id)

        await self._transition(
            document,
            DocumentStatus.PROCESSING,
            DocumentStatus.ERROR,
            error_stage=stage,
            error_message=str(exc),
        )
        return self._result(
            document,
            progress,
            start,
            timeout,
            status=DocumentStatus.ERROR,
            outcome=IngestionOutcome.FAILED,
            error_stage=stage,
            error_message=str(exc),
            passages_stored=0,
        )

    async def _transition(
        self,
        document: Document,
        previous: DocumentStatus,
        status: DocumentStatus,
        error_stage: IngestionStage | None = None,
        error_message: str | None = None,
    ) -> None:
        await self._status_store.set_status(
            document.document_id,
            document.workspace_id,
            status,
            error_stage=error_stage,
            error_message=error_message,
        )
        logger.info(
            "document_status_changed",
            document_id=document.document_id,
            workspace_id=document.workspace_id,
            from_status=previous.value,
            to_status=status.value,
            error_stage=error_stage.value if error_stage else None,
        )

    def _result(
        self,
        document: Document,
        progress: _PipelineProgress,
        start: float,
        timeout: float,
        *,
        status: DocumentStatus,
        outcome: IngestionOutcome,
        error_stage: IngestionStage | None = None,
        error_message: str | None = None,
        passages_stored: int | None = None,
    ) -> IngestionResult:
        stored = progress.passages_stored if passages_stored is None else passages_stored
        return IngestionResult(
            document_id=document.document_id,
            workspace_id=document.workspace_id,
            status=status,
            outcome=outcome,
            passages_stored=stored,
            batches_stored=self._batcher.batch_count(stored),
            text_length=progress.text_length,
            error_stage=error_stage,
            error_message=error_message,
            timeout_seconds=timeout,
            ingestion_time=time.monotonic() - start,
        )
