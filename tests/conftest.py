"""Shared pytest fixtures for the studyrag test suite."""

from __future__ import annotations

import hashlib
import logging
import re
import struct
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import docx
import fitz
import pytest
import structlog

from studyrag.interfaces.document_status_store import IDocumentStatusStore
from studyrag.interfaces.embedding_provider import IEmbeddingProvider
from studyrag.interfaces.vector_index_provider import IVectorIndexProvider
from studyrag.models.document import DocumentStatus, DocumentStatusRecord, IngestionStage
from studyrag.models.rag import IndexStats, RetrievedPassage, VectorIndexEntry

# ---------------------------------------------------------------------------
# Embedding mocks
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 128
_BAG_OF_WORDS_DIM = 1024
_TOKEN_RE = re.compile(r"[a-z0-9]+")


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic fixed-length vector by hashing *text*.

    Uses SHA-256 to hash the text, maps each byte into ``[-1, 1]`` and
    normalises to unit length.  Deterministic: the same text always
    produces the same vector.
    """
    raw = hashlib.sha256(text.encode("utf-8")).digest()
    while len(raw) < dim:
        raw += hashlib.sha256(raw).digest()
    values = [b / 127.5 - 1.0 for b in raw[:dim]]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


def _bag_of_words_vector(text: str, dim: int = _BAG_OF_WORDS_DIM) -> list[float]:
    """Feature-hashed word counts, normalised to unit length.

    Cosine similarity between two such vectors is word overlap, which
    makes retrieval rankings predictable in tests.
    """
    values = [0.0] * dim
    for token in _TOKEN_RE.findall(text.lower()):
        bucket = struct.unpack("<I", hashlib.sha256(token.encode("utf-8")).digest()[:4])[0]
        values[bucket % dim] += 1.0
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [_hash_to_vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


class KeywordEmbeddingProvider(MockEmbeddingProvider):
    """Bag-of-words embedding provider: similarity tracks shared words."""

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [_bag_of_words_vector(t) for t in texts]

    def get_dimension(self) -> int:
        return _BAG_OF_WORDS_DIM

    def get_provider_name(self) -> str:
        return "mock-keyword-embedding"


# ---------------------------------------------------------------------------
# Vector index and status store mocks
# ---------------------------------------------------------------------------


class MockVectorIndex(IVectorIndexProvider):
    """In-memory vector index keyed by namespace, then entry id.

    Scores are cosine similarity clamped to ``[0, 1]``, matching the
    ChromaDB adapter.
    """

    def __init__(self) -> None:
        self._namespaces: dict[str, dict[str, VectorIndexEntry]] = {}
        self.upsert_calls: list[tuple[str, list[VectorIndexEntry]]] = []
        self.query_calls: list[dict[str, Any]] = []

    async def upsert(self, namespace: str, entries: list[VectorIndexEntry]) -> int:
        self.upsert_calls.append((namespace, list(entries)))
        store = self._namespaces.setdefault(namespace, {})
        for entry in entries:
            store[entry.entry_id] = entry
        return len(entries)

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int = 10,
        filters: dict[str, Any] | None = None,
    ) -> list[RetrievedPassage]:
        self.query_calls.append({"namespace": namespace, "top_k": top_k, "filters": filters})
        scored: list[tuple[float, VectorIndexEntry]] = []
        for entry in self._namespaces.get(namespace, {}).values():
            if filters and not self._matches(entry, filters):
                continue
            dot = sum(a * b for a, b in zip(vector, entry.vector, strict=False))
            scored.append((max(0.0, min(1.0, dot)), entry))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [
            RetrievedPassage(
                entry_id=entry.entry_id,
                text=entry.text,
                metadata=dict(entry.metadata),
                score=score,
            )
            for score, entry in scored[:top_k]
        ]

    async def delete_by_filter(self, namespace: str, filters: dict[str, Any]) -> int:
        if not filters:
            raise ValueError("delete_by_filter requires at least one filter")
        store = self._namespaces.get(namespace, {})
        doomed = [eid for eid, entry in store.items() if self._matches(entry, filters)]
        for eid in doomed:
            del store[eid]
        return len(doomed)

    async def describe_stats(self, namespace: str) -> IndexStats:
        store = self._namespaces.get(namespace, {})
        dimension = len(next(iter(store.values())).vector) if store else 0
        return IndexStats(namespace=namespace, count=len(store), dimension=dimension)

    def get_provider_name(self) -> str:
        return "mock-index"

    def is_available(self) -> bool:
        return True

    def entries(self, namespace: str) -> dict[str, VectorIndexEntry]:
        return dict(self._namespaces.get(namespace, {}))

    @staticmethod
    def _matches(entry: VectorIndexEntry, filters: dict[str, Any]) -> bool:
        return all(entry.metadata.get(key) == value for key, value in filters.items())


class InMemoryStatusStore(IDocumentStatusStore):
    """Status store that also records every transition in order."""

    def __init__(self) -> None:
        self._records: dict[str, DocumentStatusRecord] = {}
        self.history: list[tuple[str, DocumentStatus]] = []

    async def set_status(
        self,
        document_id: str,
        workspace_id: str,
        status: DocumentStatus,
        error_stage: IngestionStage | None = None,
        error_message: str | None = None,
    ) -> None:
        now = datetime.now(tz=timezone.utc)
        previous = self._records.get(document_id)
        is_error = status == DocumentStatus.ERROR
        self._records[document_id] = DocumentStatusRecord(
            document_id=document_id,
            workspace_id=workspace_id,
            status=status,
            error_stage=error_stage if is_error else None,
            error_message=error_message if is_error else None,
            created_at=previous.created_at if previous else now,
            updated_at=now,
        )
        self.history.append((document_id, status))

    async def get_status(self, document_id: str) -> DocumentStatusRecord | None:
        return self._records.get(document_id)

    def get_provider_name(self) -> str:
        return "memory-status"


@pytest.fixture
def mock_embedding() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def keyword_embedding() -> KeywordEmbeddingProvider:
    return KeywordEmbeddingProvider()


@pytest.fixture
def mock_index() -> MockVectorIndex:
    return MockVectorIndex()


@pytest.fixture
def status_store() -> InMemoryStatusStore:
    return InMemoryStatusStore()


# ---------------------------------------------------------------------------
# Sample text and files
# ---------------------------------------------------------------------------

_PARAGRAPHS = [
    "Photosynthesis is the process by which green plants convert light energy "
    "into chemical energy. It takes place mainly in the chloroplasts of leaf cells.",
    "The light-dependent reactions occur in the thylakoid membranes. Water is split, "
    "oxygen is released, and ATP and NADPH are produced for the next stage.",
    "The Calvin cycle uses ATP and NADPH to fix carbon dioxide into sugars. It runs "
    "in the stroma and does not require light directly.",
    "Factors that limit the rate of photosynthesis include light intensity, carbon "
    "dioxide concentration, and temperature. Each can become the bottleneck.",
    "Cellular respiration is roughly the reverse process: sugars are broken down to "
    "release energy, consuming oxygen and producing carbon dioxide and water.",
]


@pytest.fixture
def sample_study_text() -> str:
    """Multi-paragraph study notes, roughly 3,700 characters."""
    return "\n\n".join(_PARAGRAPHS * 5)


def _write_pdf(path: Path, pages: list[str]) -> Path:
    doc = fitz.open()
    for page_text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), page_text, fontsize=10)
    doc.save(str(path))
    doc.close()
    return path


def _wrap(text: str, width: int = 80) -> str:
    """Break *text* into lines short enough to stay on a PDF page."""
    lines: list[str] = []
    current = ""
    for word in text.split():
        if current and len(current) + 1 + len(word) > width:
            lines.append(current)
            current = word
        else:
            current = f"{current} {word}".strip()
    if current:
        lines.append(current)
    return "\n".join(lines)


@pytest.fixture
def sample_pdf(tmp_path: Path) -> Path:
    """A 3-page PDF with clean text, each page one paragraph block."""
    pages = [_wrap(" ".join(_PARAGRAPHS[i : i + 2])) for i in range(0, 5, 2)]
    return _write_pdf(tmp_path / "photosynthesis.pdf", pages)


@pytest.fixture
def spaced_pdf(tmp_path: Path) -> Path:
    """A PDF whose text layer has every character separated by spaces."""
    spaced = " ".join("Chlorophyll absorbs red and blue light")
    return _write_pdf(tmp_path / "spaced.pdf", [spaced])


@pytest.fixture
def many_page_pdf(tmp_path: Path) -> Path:
    """A 25-page PDF, one short numbered line per page."""
    pages = [f"Page {n} discusses stage {n} of the Calvin cycle." for n in range(1, 26)]
    return _write_pdf(tmp_path / "long.pdf", pages)


@pytest.fixture
def sample_docx(tmp_path: Path) -> Path:
    """A DOCX with three paragraphs."""
    document = docx.Document()
    document.add_paragraph("Chapter 1: Cell Biology")
    document.add_paragraph("Mitochondria produce most of the cell's ATP.")
    document.add_paragraph("Ribosomes assemble proteins from amino acids.")
    path = tmp_path / "cells.docx"
    document.save(str(path))
    return path


@pytest.fixture
def sample_txt(tmp_path: Path, sample_study_text: str) -> Path:
    path = tmp_path / "notes.txt"
    path.write_text(sample_study_text, encoding="utf-8")
    return path


@pytest.fixture
def restore_logging():
    """Undo configure_logging() so cached loggers never outlive a captured stream."""
    saved_config = structlog.get_config()
    root_logger = logging.getLogger()
    saved_handlers = list(root_logger.handlers)
    saved_level = root_logger.level
    yield
    structlog.reset_defaults()
    structlog.configure(**saved_config)
    root_logger.handlers[:] = saved_handlers
    root_logger.setLevel(saved_level)
