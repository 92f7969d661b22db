"""RAG data models: passages, index entries, retrieval results, index stats.

All models are frozen pydantic v2 models.  A :class:`Passage` is the unit
of embedding and retrieval; a :class:`VectorIndexEntry` is a passage plus
its vector as written to a workspace namespace; a
:class:`RetrievedPassage` is what a similarity query hands back.

Every stored entry carries ``document_id`` and ``workspace_id`` in its
metadata so "delete all passages of document D" is a metadata filter and
never needs a list of entry ids.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Passage -- a bounded slice of a document's text.
# ---------------------------------------------------------------------------
class Passage(BaseModel):
    """A chunk of document text, ready for embedding."""

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(description="Identifier of the parent document.")
    workspace_id: str = Field(description="Workspace namespace of the parent document.")
    ordinal: int = Field(ge=0, description="Zero-based position of this passage in the document.")
    total: int = Field(ge=1, description="Number of passages the document produced.")
    text: str = Field(description="The passage's textual content.")
    source: str = Field(default="", description="Original file name of the parent document.")

    @property
    def entry_id(self) -> str:
        """Deterministic index id; re-ingesting a document overwrites its entries."""
        return f"{self.document_id}-{self.ordinal}"

    def to_metadata(self) -> dict[str, str | int]:
        """Flat metadata map stored next to the vector."""
        return {
            "document_id": self.document_id,
            "workspace_id": self.workspace_id,
            "source": self.source,
            "ordinal": self.ordinal,
            "total": self.total,
        }


# ---------------------------------------------------------------------------
# VectorIndexEntry -- the tuple persisted in the vector index.
# ---------------------------------------------------------------------------
class VectorIndexEntry(BaseModel):
    """An (id, vector, text, metadata) tuple written under a namespace."""

    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(description="Primary key within the namespace.")
    vector: list[float] = Field(description="Embedding of ``text``.")
    text: str = Field(description="Passage text stored with the vector.")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_passage(cls, passage: Passage, vector: list[float]) -> VectorIndexEntry:
        return cls(
            entry_id=passage.entry_id,
            vector=vector,
            text=passage.text,
            metadata=passage.to_metadata(),
        )


# ---------------------------------------------------------------------------
# RetrievedPassage -- one similarity-query hit.
# ---------------------------------------------------------------------------
class RetrievedPassage(BaseModel):
    """A stored passage returned by a query, with its similarity score.

    Ephemeral: built per query and never persisted.
    """

    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(description="Index id of the matched entry.")
    text: str = Field(description="Passage text.")
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Cosine similarity between the query and this passage.",
    )
    matched_query: str = Field(
        default="",
        description="The primary query or expansion probe that surfaced this passage.",
    )

    @property
    def document_id(self) -> str:
        return str(self.metadata.get("document_id", ""))


# ---------------------------------------------------------------------------
# IndexStats -- diagnostic snapshot of one namespace.
# ---------------------------------------------------------------------------
class IndexStats(BaseModel):
    """Entry count and vector dimension for a namespace."""

    model_config = ConfigDict(frozen=True)

    namespace: str = Field(description="Workspace id the stats describe.")
    count: int = Field(default=0, ge=0, description="Number of stored entries.")
    dimension: int = Field(
        default=0, ge=0, description="Vector dimension, 0 when the namespace is empty."
    )
