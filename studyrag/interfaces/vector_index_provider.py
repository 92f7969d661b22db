"""Abstract base class for vector-index service providers.

Every operation is scoped to a ``namespace`` equal to the workspace id.
Namespaces are hard partitions: a query or delete in one namespace never
sees another namespace's entries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from studyrag.models.rag import IndexStats, RetrievedPassage, VectorIndexEntry


class IVectorIndexProvider(ABC):
    """Contract for the vector index backing passage storage and search.

    All query and mutation methods are async so network-backed indexes do
    not block the event loop.  Implementations do not retry internally.

    **Filter syntax** (``filters`` in :meth:`query` and
    :meth:`delete_by_filter`) is a flat equality map over entry metadata,
    e.g. ``{"document_id": "doc-42"}``.  Multiple keys are AND-ed.
    """

    @abstractmethod
    async def upsert(self, namespace: str, entries: list[VectorIndexEntry]) -> int:
        """Insert or overwrite entries by ``entry_id``.

        Parameters
        ----------
        namespace:
            Workspace id the entries belong to.
        entries:
            Entries to write.  Writing the same id twice overwrites.

        Returns
        -------
        int
            Number of entries written.

        Raises
        ------
        studyrag.utils.errors.IndexUnavailableError
            If the index cannot be reached.
        """

    @abstractmethod
    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        filters: dict[str, Any] | None = None,
    ) -> list[RetrievedPassage]:
        """Return at most *top_k* entries ordered by descending similarity.

        An empty or unknown namespace yields an empty list, not an error.

        Raises
        ------
        studyrag.utils.errors.IndexUnavailableError
            If the index cannot be reached.
        """

    @abstractmethod
    async def delete_by_filter(self, namespace: str, filters: dict[str, Any]) -> int:
        """Delete every entry in *namespace* whose metadata matches *filters*.

        Returns
        -------
        int
            Number of entries deleted.

        Raises
        ------
        studyrag.utils.errors.IndexUnavailableError
            If the index cannot be reached.  Callers performing document
            deletion log and absorb this.
        """

    @abstractmethod
    async def describe_stats(self, namespace: str) -> IndexStats:
        """Return entry count and vector dimension for *namespace*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the index is reachable."""
