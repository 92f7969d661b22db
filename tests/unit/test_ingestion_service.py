"""Unit tests for the IngestionService orchestrator.

All collaborators except the extractor and chunker are in-memory mocks
from ``tests.conftest``; the extractor reads real files from ``tmp_path``.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from studyrag.models.document import (
    Document,
    DocumentStatus,
    IngestionOutcome,
    IngestionStage,
)
from studyrag.models.rag import VectorIndexEntry
from studyrag.services.ingestion.chunker import TextChunker
from studyrag.services.ingestion.embedding_batcher import EmbeddingBatcher
from studyrag.services.ingestion.ingestion_service import IngestionService
from studyrag.services.ingestion.text_extractor import TextExtractor
from studyrag.utils.errors import EmbeddingError, IndexUnavailableError
from tests.conftest import InMemoryStatusStore, MockEmbeddingProvider, MockVectorIndex

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _FailingOnCall(MockEmbeddingProvider):
    """Embedding provider whose N-th embed() call (1-based) raises."""

    def __init__(self, failing_call: int) -> None:
        super().__init__()
        self._failing_call = failing_call

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if len(self.calls) + 1 == self._failing_call:
            self.calls.append(list(texts))
            raise EmbeddingError(message="quota exceeded", provider_name="mock-embedding")
        return await super().embed(texts)


class _SlowEmbedding(MockEmbeddingProvider):
    async def embed(self, texts: list[str]) -> list[list[float]]:
        await asyncio.sleep(5)
        return await super().embed(texts)


class _SlowExtractor(TextExtractor):
    async def extract(self, file_path: str, declared_type: str = "") -> str:
        await asyncio.sleep(5)
        return "never returned"


class _ThreadedIndex(MockVectorIndex):
    """Index whose writes run in a worker thread, like the ChromaDB adapter.

    Cancelling the awaiting coroutine does not stop the thread, so the
    entries land after the caller has given up on them.
    """

    async def upsert(self, namespace: str, entries: list[VectorIndexEntry]) -> int:
        return await asyncio.to_thread(self._store_slowly, namespace, entries)

    def _store_slowly(self, namespace: str, entries: list[VectorIndexEntry]) -> int:
        time.sleep(0.5)
        store = self._namespaces.setdefault(namespace, {})
        for entry in entries:
            store[entry.entry_id] = entry
        return len(entries)


def _service(
    embedding: MockEmbeddingProvider,
    index: MockVectorIndex,
    store: InMemoryStatusStore,
    *,
    extractor: TextExtractor | None = None,
    chunker: TextChunker | None = None,
    batcher: EmbeddingBatcher | None = None,
) -> IngestionService:
    return IngestionService(
        extractor=extractor or TextExtractor(),
        chunker=chunker or TextChunker(chunk_size=300, overlap=50),
        batcher=batcher or EmbeddingBatcher(batch_delay_seconds=0),
        embedding_provider=embedding,
        vector_index=index,
        status_store=store,
    )


def _document(path: Path, document_id: str = "doc-1", declared_type: str = "txt") -> Document:
    return Document(
        document_id=document_id,
        workspace_id="ws-biology",
        file_path=str(path),
        declared_type=declared_type,
        file_name=path.name,
    )


# ======================================================================
# Happy path
# ======================================================================


class TestSuccessfulIngestion:
    @pytest.mark.asyncio
    async def test_transitions_processing_then_ready(
        self, mock_embedding, mock_index, status_store, sample_txt
    ) -> None:
        service = _service(mock_embedding, mock_index, status_store)
        result = await service.ingest(_document(sample_txt))

        assert status_store.history == [
            ("doc-1", DocumentStatus.PROCESSING),
            ("doc-1", DocumentStatus.READY),
        ]
        assert result.status == DocumentStatus.READY
        assert result.outcome == IngestionOutcome.INDEXED
        assert result.error_stage is None

    @pytest.mark.asyncio
    async def test_every_passage_is_stored_with_contiguous_ordinals(
        self, mock_embedding, mock_index, status_store, sample_txt
    ) -> None:
        service = _service(mock_embedding, mock_index, status_store)
        result = await service.ingest(_document(sample_txt))

        entries = mock_index.entries("ws-biology")
        assert result.passages_stored == len(entries) > 5
        ordinals = sorted(e.metadata["ordinal"] for e in entries.values())
        assert ordinals == list(range(len(entries)))
        assert all(e.metadata["total"] == len(entries) for e in entries.values())
        assert all(e.metadata["source"] == "notes.txt" for e in entries.values())
        assert result.batches_stored == -(-len(entries) // 5)

    @pytest.mark.asyncio
    async def test_result_reports_text_length_and_timeout(
        self, mock_embedding, mock_index, status_store, sample_txt, sample_study_text
    ) -> None:
        batcher = EmbeddingBatcher(batch_delay_seconds=0)
        service = _service(mock_embedding, mock_index, status_store, batcher=batcher)
        result = await service.ingest(_document(sample_txt))

        assert result.text_length == len(sample_study_text)
        assert result.timeout_seconds == pytest.approx(
            batcher.estimate_timeout(result.passages_stored)
        )

    @pytest.mark.asyncio
    async def test_unusable_chunks_are_dropped_before_numbering(
        self, mock_embedding, mock_index, status_store, sample_txt
    ) -> None:
        chunker = TextChunker()
        service = _service(mock_embedding, mock_index, status_store, chunker=chunker)
        chunks = ["Enzymes lower activation energy.", "\x00\x00", "----------", "ok", "ATP is energy currency."]
        with patch.object(chunker, "split", return_value=chunks):
            result = await service.ingest(_document(sample_txt))

        entries = sorted(mock_index.entries("ws-biology").values(), key=lambda e: e.metadata["ordinal"])
        assert [e.text for e in entries] == chunks[::4]
        assert [e.entry_id for e in entries] == ["doc-1-0", "doc-1-1"]
        assert result.passages_stored == 2

    @pytest.mark.asyncio
    async def test_reingestion_replaces_previous_passages(
        self, mock_embedding, mock_index, status_store, tmp_path, sample_study_text
    ) -> None:
        path = tmp_path / "notes.txt"
        path.write_text(sample_study_text, encoding="utf-8")
        service = _service(mock_embedding, mock_index, status_store)
        first = await service.ingest(_document(path))

        path.write_text("Only one short paragraph about osmosis remains.", encoding="utf-8")
        second = await service.ingest(_document(path))

        entries = mock_index.entries("ws-biology")
        assert first.passages_stored > 1
        assert second.passages_stored == 1
        assert list(entries) == ["doc-1-0"]
        assert "osmosis" in entries["doc-1-0"].text

    @pytest.mark.asyncio
    async def test_documents_in_one_workspace_stay_separate(
        self, mock_embedding, mock_index, status_store, sample_txt, sample_docx
    ) -> None:
        service = _service(mock_embedding, mock_index, status_store)
        results = await asyncio.gather(
            service.ingest(_document(sample_txt, "doc-a")),
            service.ingest(_document(sample_docx, "doc-b", declared_type="docx")),
        )

        assert all(r.status == DocumentStatus.READY for r in results)
        doc_ids = {e.metadata["document_id"] for e in mock_index.entries("ws-biology").values()}
        assert doc_ids == {"doc-a", "doc-b"}


# ======================================================================
# No content
# ======================================================================


class TestNoContent:
    @pytest.mark.asyncio
    async def test_empty_file_is_ready_with_no_content(
        self, mock_embedding, mock_index, status_store, tmp_path
    ) -> None:
        path = tmp_path / "blank.txt"
        path.write_text("   \n\n  ", encoding="utf-8")
        service = _service(mock_embedding, mock_index, status_store)

        result = await service.ingest(_document(path))

        assert result.status == DocumentStatus.READY
        assert result.outcome == IngestionOutcome.NO_CONTENT
        assert result.passages_stored == 0
        assert mock_embedding.calls == []
        assert mock_index.upsert_calls == []
        record = await status_store.get_status("doc-1")
        assert record.status == DocumentStatus.READY


# ======================================================================
# Failures
# ======================================================================


class TestFailures:
    @pytest.mark.asyncio
    async def test_unsupported_type_fails_at_extraction(
        self, mock_embedding, mock_index, status_store, tmp_path
    ) -> None:
        path = tmp_path / "diagram.png"
        path.write_bytes(b"\x89PNG")
        service = _service(mock_embedding, mock_index, status_store)

        result = await service.ingest(_document(path, declared_type="image/png"))

        assert result.status == DocumentStatus.ERROR
        assert result.outcome == IngestionOutcome.FAILED
        assert result.error_stage == IngestionStage.EXTRACTION
        record = await status_store.get_status("doc-1")
        assert record.status == DocumentStatus.ERROR
        assert record.error_stage == IngestionStage.EXTRACTION
        assert record.error_message
        assert mock_embedding.calls == []

    @pytest.mark.asyncio
    async def test_corrupt_pdf_fails_at_extraction(
        self, mock_embedding, mock_index, status_store, tmp_path
    ) -> None:
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"definitely not a pdf")
        service = _service(mock_embedding, mock_index, status_store)

        result = await service.ingest(_document(path, declared_type="pdf"))

        assert result.error_stage == IngestionStage.EXTRACTION
        assert status_store.history[-1] == ("doc-1", DocumentStatus.ERROR)

    @pytest.mark.asyncio
    async def test_chunker_failure_fails_at_chunking(
        self, mock_embedding, mock_index, status_store, sample_txt
    ) -> None:
        chunker = TextChunker()
        service = _service(mock_embedding, mock_index, status_store, chunker=chunker)
        with patch.object(chunker, "split", side_effect=RuntimeError("boom")):
            result = await service.ingest(_document(sample_txt))

        assert result.error_stage == IngestionStage.CHUNKING
        assert "boom" in result.error_message

    @pytest.mark.asyncio
    async def test_batch_failure_fails_at_embedding_and_withdraws_vectors(
        self, mock_index, status_store, sample_txt
    ) -> None:
        provider = _FailingOnCall(failing_call=2)
        service = _service(provider, mock_index, status_store)

        result = await service.ingest(_document(sample_txt))

        assert result.status == DocumentStatus.ERROR
        assert result.error_stage == IngestionStage.EMBEDDING
        assert "Batch 2 of" in result.error_message
        assert result.passages_stored == 0
        # Batch 1 was upserted, then withdrawn after the failure.
        assert len(mock_index.upsert_calls) == 1
        assert mock_index.entries("ws-biology") == {}

    @pytest.mark.asyncio
    async def test_index_failure_is_an_embedding_stage_error(
        self, mock_embedding, mock_index, status_store, sample_txt
    ) -> None:
        mock_index.upsert = AsyncMock(
            side_effect=IndexUnavailableError(message="unreachable", provider_name="chromadb")
        )
        service = _service(mock_embedding, mock_index, status_store)

        result = await service.ingest(_document(sample_txt))

        assert result.error_stage == IngestionStage.EMBEDDING
        assert "chromadb" in result.error_message

    @pytest.mark.asyncio
    async def test_cleanup_failure_still_records_error(
        self, mock_index, status_store, sample_txt
    ) -> None:
        provider = _FailingOnCall(failing_call=1)
        service = _service(provider, mock_index, status_store)
        original_delete = mock_index.delete_by_filter
        calls = {"n": 0}

        async def _delete_once_then_fail(namespace, filters):
            calls["n"] += 1
            if calls["n"] > 1:
                raise IndexUnavailableError(message="gone")
            return await original_delete(namespace, filters)

        mock_index.delete_by_filter = _delete_once_then_fail
        result = await service.ingest(_document(sample_txt))

        assert result.error_stage == IngestionStage.EMBEDDING
        assert status_store.history[-1] == ("doc-1", DocumentStatus.ERROR)


# ======================================================================
# Timeouts
# ======================================================================


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_slow_extraction_times_out(
        self, mock_embedding, mock_index, status_store, sample_txt
    ) -> None:
        batcher = EmbeddingBatcher(batch_delay_seconds=0, timeout_baseline_seconds=0.05)
        service = _service(
            mock_embedding, mock_index, status_store, extractor=_SlowExtractor(), batcher=batcher
        )

        result = await service.ingest(_document(sample_txt))

        assert result.status == DocumentStatus.ERROR
        assert result.error_stage == IngestionStage.TIMEOUT
        record = await status_store.get_status("doc-1")
        assert record.error_stage == IngestionStage.TIMEOUT

    @pytest.mark.asyncio
    async def test_slow_embedding_times_out_and_leaves_no_vectors(
        self, mock_index, status_store, sample_txt
    ) -> None:
        batcher = EmbeddingBatcher(
            batch_delay_seconds=0,
            timeout_baseline_seconds=0.3,
            timeout_per_batch_seconds=0,
            timeout_safety_factor=0,
        )
        service = _service(_SlowEmbedding(), mock_index, status_store, batcher=batcher)

        result = await service.ingest(_document(sample_txt))

        assert result.error_stage == IngestionStage.TIMEOUT
        assert result.timeout_seconds == pytest.approx(0.3)
        assert mock_index.entries("ws-biology") == {}

    @pytest.mark.asyncio
    async def test_write_still_running_in_thread_is_withdrawn(
        self, mock_embedding, status_store, sample_txt
    ) -> None:
        index = _ThreadedIndex()
        batcher = EmbeddingBatcher(
            batch_delay_seconds=0,
            timeout_baseline_seconds=0.2,
            timeout_per_batch_seconds=0,
            timeout_safety_factor=0,
        )
        service = _service(mock_embedding, index, status_store, batcher=batcher)

        result = await service.ingest(_document(sample_txt))

        assert result.error_stage == IngestionStage.TIMEOUT
        assert index.entries("ws-biology") == {}
        # Nothing lands later either.
        await asyncio.sleep(0.6)
        assert index.entries("ws-biology") == {}
        record = await status_store.get_status("doc-1")
        assert record.status == DocumentStatus.ERROR
        assert record.error_stage == IngestionStage.TIMEOUT


# ======================================================================
# Background ingestion and cleanup
# ======================================================================


class TestBackgroundIngestion:
    @pytest.mark.asyncio
    async def test_processing_is_recorded_before_task_runs(
        self, mock_embedding, mock_index, status_store, sample_txt
    ) -> None:
        service = _service(mock_embedding, mock_index, status_store)

        task = await service.start_ingestion(_document(sample_txt))
        record = await status_store.get_status("doc-1")
        assert record.status == DocumentStatus.PROCESSING

        result = await task
        assert result.status == DocumentStatus.READY
        assert (await status_store.get_status("doc-1")).status == DocumentStatus.READY

    @pytest.mark.asyncio
    async def test_cancelled_task_records_error(
        self, mock_index, status_store, sample_txt
    ) -> None:
        service = _service(_SlowEmbedding(), mock_index, status_store)

        task = await service.start_ingestion(_document(sample_txt))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        record = await status_store.get_status("doc-1")
        assert record.status == DocumentStatus.ERROR
        assert record.error_stage == IngestionStage.CANCELLED
        assert "cancelled" in record.error_message.lower()
        assert mock_index.entries("ws-biology") == {}


class TestDeleteDocumentVectors:
    @pytest.mark.asyncio
    async def test_removes_only_that_document(
        self, mock_embedding, mock_index, status_store, sample_txt
    ) -> None:
        service = _service(mock_embedding, mock_index, status_store)
        await service.ingest(_document(sample_txt, "doc-a"))
        await service.ingest(_document(sample_txt, "doc-b"))
        before = len(mock_index.entries("ws-biology"))

        deleted = await service.delete_document_vectors("doc-a", "ws-biology")

        remaining = mock_index.entries("ws-biology")
        assert deleted == before - len(remaining)
        assert {e.metadata["document_id"] for e in remaining.values()} == {"doc-b"}

    @pytest.mark.asyncio
    async def test_index_failure_is_absorbed(
        self, mock_embedding, mock_index, status_store
    ) -> None:
        mock_index.delete_by_filter = AsyncMock(
            side_effect=IndexUnavailableError(message="down", provider_name="chromadb")
        )
        service = _service(mock_embedding, mock_index, status_store)

        assert await service.delete_document_vectors("doc-a", "ws-biology") == 0
