"""studyrag domain models -- re-exports all public model classes.

    - document.py -- document lifecycle (status, failure stage, run result)
    - rag.py      -- passages, index entries, retrieval hits, index stats
"""

from __future__ import annotations

from studyrag.models.document import (
    Document,
    DocumentStatus,
    DocumentStatusRecord,
    IngestionOutcome,
    IngestionResult,
    IngestionStage,
)
from studyrag.models.rag import IndexStats, Passage, RetrievedPassage, VectorIndexEntry

__all__ = [
    "Document",
    "DocumentStatus",
    "DocumentStatusRecord",
    "IndexStats",
    "IngestionOutcome",
    "IngestionResult",
    "IngestionStage",
    "Passage",
    "RetrievedPassage",
    "VectorIndexEntry",
]
