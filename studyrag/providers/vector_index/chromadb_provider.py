"""ChromaDB vector index provider adapter.

Implements :class:`IVectorIndexProvider` on top of ChromaDB.  Each
workspace namespace is its own collection (``<prefix>-<workspace id>``),
so isolation between workspaces is structural rather than a metadata
filter that every call site must remember to pass.  Collections use
cosine distance; similarity is reported as ``1 - distance`` clamped to
``[0, 1]``.

Uses ``chromadb.HttpClient`` when a host is configured, otherwise a local
``chromadb.PersistentClient``.  The synchronous chroma calls run in a
worker thread so a slow index never blocks other pipelines' event loop.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import re
from typing import Any

# ChromaDB reports anonymous telemetry through PostHog; a version mismatch
# between chroma's bundled client and the installed posthog raises
# "capture() takes 1 positional argument" errors.  Disable it before import.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from studyrag.interfaces.vector_index_provider import IVectorIndexProvider
from studyrag.models.rag import IndexStats, RetrievedPassage, VectorIndexEntry
from studyrag.utils.errors import IndexUnavailableError, RAGError

logger = structlog.get_logger(logger_name=__name__)

_NAME_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_-]+")
_MAX_COLLECTION_NAME = 63


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that keeps ChromaDB from loading a model.

    Vectors always arrive pre-computed from an :class:`IEmbeddingProvider`,
    so chroma's default all-MiniLM-L6-v2 ONNX model is never needed.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "studyrag uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBProvider(IVectorIndexProvider):
    """Vector index backed by ChromaDB, one collection per namespace.

    Parameters
    ----------
    persist_directory:
        On-disk location for the local client.  Ignored when *host* is set.
    collection_prefix:
        Prefix of every namespace collection name.
    host, port:
        Remote chroma server.  An empty host selects the local client.
    embedding_dimension:
        Expected vector length.  When set, upserts with any other length
        are rejected before reaching chroma.
    client:
        Pre-built chroma client (tests, shared clients).

    Raises
    ------
    IndexUnavailableError
        If the chroma client cannot be constructed.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_prefix: str = "workspace",
        host: str = "",
        port: int = 8000,
        embedding_dimension: int | None = None,
        client: Any | None = None,
    ) -> None:
        self._collection_prefix = collection_prefix
        self._embedding_dimension = embedding_dimension
        self._collections: dict[str, Any] = {}
        chroma_settings = chromadb.config.Settings(anonymized_telemetry=False)
        try:
            if client is not None:
                self._client = client
            elif host:
                self._client = chromadb.HttpClient(host=host, port=port, settings=chroma_settings)
            else:
                self._client = chromadb.PersistentClient(
                    path=persist_directory,
                    settings=chroma_settings,
                )
        except Exception as exc:
            raise IndexUnavailableError(
                message=f"Cannot open ChromaDB ({host or persist_directory}): {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info(
            "chromadb_client_ready",
            mode="http" if host else "persistent",
            location=f"{host}:{port}" if host else persist_directory,
        )

    # ------------------------------------------------------------------
    # IVectorIndexProvider implementation
    # ------------------------------------------------------------------

    async def upsert(self, namespace: str, entries: list[VectorIndexEntry]) -> int:
        """Insert or overwrite *entries* in the namespace collection."""
        if not entries:
            return 0
        self._validate_dimensions(entries)

        def _upsert() -> None:
            collection = self._get_collection(namespace)
            collection.upsert(
                ids=[e.entry_id for e in entries],
                embeddings=[e.vector for e in entries],
                documents=[e.text for e in entries],
                metadatas=[e.metadata for e in entries],
            )

        await self._run(_upsert, "upsert", namespace)
        logger.debug("chromadb_upsert", namespace=namespace, count=len(entries))
        return len(entries)

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        filters: dict[str, Any] | None = None,
    ) -> list[RetrievedPassage]:
        """Return up to *top_k* passages ordered by descending similarity."""
        if top_k <= 0:
            return []
        where = self._translate_filters(filters)

        def _query() -> dict[str, Any] | None:
            collection = self._get_collection(namespace)
            count = collection.count()
            if count == 0:
                return None
            kwargs: dict[str, Any] = {
                "query_embeddings": [vector],
                "n_results": min(top_k, count),
                "include": ["documents", "metadatas", "distances"],
            }
            if where:
                kwargs["where"] = where
            return collection.query(**kwargs)

        results = await self._run(_query, "query", namespace)
        if not results or not results["ids"] or not results["ids"][0]:
            return []

        ids = results["ids"][0]
        documents = results["documents"][0] if results["documents"] else [""] * len(ids)
        metadatas = results["metadatas"][0] if results["metadatas"] else [{}] * len(ids)
        distances = results["distances"][0] if results["distances"] else [1.0] * len(ids)

        passages: list[RetrievedPassage] = []
        for entry_id, text, meta, distance in zip(ids, documents, metadatas, distances, strict=True):
            similarity = max(0.0, min(1.0, 1.0 - float(distance)))
            passages.append(
                RetrievedPassage(
                    entry_id=entry_id,
                    text=text or "",
                    metadata=dict(meta or {}),
                    score=similarity,
                )
            )
        passages.sort(key=lambda p: p.score, reverse=True)
        return passages[:top_k]

    async def delete_by_filter(self, namespace: str, filters: dict[str, Any]) -> int:
        """Delete matching entries and return how many were removed."""
        where = self._translate_filters(filters)
        if not where:
            raise ValueError("delete_by_filter requires at least one filter key")

        def _delete() -> int:
            collection = self._get_collection(namespace)
            existing = collection.get(where=where, include=[])
            count = len(existing["ids"]) if existing["ids"] else 0
            if count > 0:
                collection.delete(where=where)
            return count

        deleted = await self._run(_delete, "delete", namespace)
        logger.info("chromadb_delete_by_filter", namespace=namespace, filters=filters, deleted_count=deleted)
        return deleted

    async def describe_stats(self, namespace: str) -> IndexStats:
        """Return entry count and stored vector dimension for *namespace*."""

        def _stats() -> tuple[int, int]:
            collection = self._get_collection(namespace)
            count = collection.count()
            if count == 0:
                return 0, 0
            sample = collection.peek(limit=1)
            embeddings = sample.get("embeddings") if sample else None
            if embeddings is None or len(embeddings) == 0:
                return count, 0
            return count, len(embeddings[0])

        count, dimension = await self._run(_stats, "describe_stats", namespace)
        return IndexStats(namespace=namespace, count=count, dimension=dimension)

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the chroma client answers a heartbeat."""
        try:
            self._client.heartbeat()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _run(self, fn: Any, operation: str, namespace: str) -> Any:
        """Run a blocking chroma call in a thread, mapping failures."""
        try:
            return await asyncio.to_thread(fn)
        except RAGError:
            raise
        except Exception as exc:
            logger.warning(
                "chromadb_operation_failed",
                operation=operation,
                namespace=namespace,
                error=str(exc),
            )
            raise IndexUnavailableError(
                message=f"ChromaDB {operation} failed for namespace {namespace!r}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def _get_collection(self, namespace: str) -> Any:
        """Return (creating on first use) the collection for *namespace*."""
        cached = self._collections.get(namespace)
        if cached is not None:
            return cached

        name = self.collection_name(namespace)
        # Newer chroma versions reject an embedding function that differs
        # from the one persisted with the collection; reopen without one.
        try:
            collection = self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            collection = self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
            )
        self._collections[namespace] = collection
        return collection

    def collection_name(self, namespace: str) -> str:
        """Map a namespace to a valid, stable chroma collection name.

        Chroma names allow 3-63 characters of ``[A-Za-z0-9_-]`` starting and
        ending with an alphanumeric.  Names that had to be altered get a
        short hash suffix so distinct namespaces never collide.
        """
        if not namespace:
            raise ValueError("namespace must be a non-empty workspace id")
        raw = f"{self._collection_prefix}-{namespace}"
        safe = _NAME_UNSAFE_RE.sub("-", raw).strip("-_")
        if safe != raw or len(safe) > _MAX_COLLECTION_NAME:
            digest = hashlib.sha256(namespace.encode("utf-8")).hexdigest()[:10]
            safe = f"{safe[: _MAX_COLLECTION_NAME - 11].rstrip('-_')}-{digest}".lstrip("-_")
        if len(safe) < 3:
            safe = f"{safe}-ns"
        return safe

    def _validate_dimensions(self, entries: list[VectorIndexEntry]) -> None:
        expected = self._embedding_dimension or len(entries[0].vector)
        for entry in entries:
            if len(entry.vector) != expected:
                raise RAGError(
                    message=(
                        f"Embedding dimension mismatch for {entry.entry_id}: "
                        f"expected {expected}, got {len(entry.vector)}"
                    ),
                    provider_name=self.get_provider_name(),
                )

    @staticmethod
    def _translate_filters(filters: dict[str, Any] | None) -> dict[str, Any] | None:
        """Translate a flat equality map into a chroma ``where`` clause."""
        if not filters:
            return None
        clauses = [{key: value} for key, value in filters.items()]
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}
