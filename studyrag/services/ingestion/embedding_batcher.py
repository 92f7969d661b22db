"""Batched embed-and-store with pacing and an adaptive timeout estimate.

Passages are embedded and upserted in small fixed-size batches, strictly
one batch after another.  Sequential batches keep the embedding provider
under its rate limit and make a failure unambiguous: batches before the
failing one are stored, the failing one and everything after it are not.

A fixed pause separates consecutive batches (none after the last).  The
pause is awaited inside this document's pipeline, so other documents'
pipelines keep running while it elapses.

The batcher also owns the timeout heuristic the orchestrator races the
pipeline against::

    estimate = baseline + safety_factor * (batches * per_batch + (batches - 1) * delay)

capped at ``timeout_cap_seconds``.  All constants are constructor
arguments, normally fed from :class:`~studyrag.config.settings.Settings`.
"""

from __future__ import annotations

import asyncio
import math
from typing import TYPE_CHECKING

import structlog

from studyrag.config.settings import Settings
from studyrag.models.rag import Passage, VectorIndexEntry
from studyrag.utils.errors import BatchFailureError, EmbeddingError

if TYPE_CHECKING:
    from studyrag.interfaces.embedding_provider import IEmbeddingProvider
    from studyrag.interfaces.vector_index_provider import IVectorIndexProvider

logger = structlog.get_logger(logger_name=__name__)

BATCH_SIZE = 5
BATCH_DELAY_SECONDS = 2.0
TIMEOUT_BASELINE_SECONDS = 300.0
TIMEOUT_PER_BATCH_SECONDS = 5.0
TIMEOUT_SAFETY_FACTOR = 1.5
TIMEOUT_CAP_SECONDS = 1800.0


class EmbeddingBatcher:
    """Embeds passages and stores them in the vector index, batch by batch.

    Parameters
    ----------
    batch_size:
        Passages per embedding request / upsert.
    batch_delay_seconds:
        Pause between consecutive batches.
    timeout_baseline_seconds, timeout_per_batch_seconds,
    timeout_safety_factor, timeout_cap_seconds:
        Inputs to :meth:`estimate_timeout`.
    """

    def __init__(
        self,
        batch_size: int = BATCH_SIZE,
        batch_delay_seconds: float = BATCH_DELAY_SECONDS,
        timeout_baseline_seconds: float = TIMEOUT_BASELINE_SECONDS,
        timeout_per_batch_seconds: float = TIMEOUT_PER_BATCH_SECONDS,
        timeout_safety_factor: float = TIMEOUT_SAFETY_FACTOR,
        timeout_cap_seconds: float = TIMEOUT_CAP_SECONDS,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._batch_size = batch_size
        self._batch_delay_seconds = batch_delay_seconds
        self._timeout_baseline_seconds = timeout_baseline_seconds
        self._timeout_per_batch_seconds = timeout_per_batch_seconds
        self._timeout_safety_factor = timeout_safety_factor
        self._timeout_cap_seconds = timeout_cap_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> EmbeddingBatcher:
        return cls(
            batch_size=settings.embedding_batch_size,
            batch_delay_seconds=settings.embedding_batch_delay_seconds,
            timeout_baseline_seconds=settings.ingestion_timeout_baseline_seconds,
            timeout_per_batch_seconds=settings.ingestion_timeout_per_batch_seconds,
            timeout_safety_factor=settings.ingestion_timeout_safety_factor,
            timeout_cap_seconds=settings.ingestion_timeout_cap_seconds,
        )

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def timeout_baseline_seconds(self) -> float:
        return self._timeout_baseline_seconds

    # ------------------------------------------------------------------
    # Timeout estimation
    # ------------------------------------------------------------------

    def batch_count(self, passage_count: int) -> int:
        """Number of batches *passage_count* passages are split into."""
        return math.ceil(max(0, passage_count) / self._batch_size)

    def estimate_timeout(self, passage_count: int) -> float:
        """Adaptive deadline in seconds for embedding *passage_count* passages."""
        batches = self.batch_count(passage_count)
        expected_work = (
            batches * self._timeout_per_batch_seconds
            + max(0, batches - 1) * self._batch_delay_seconds
        )
        estimate = self._timeout_baseline_seconds + self._timeout_safety_factor * expected_work
        return min(self._timeout_cap_seconds, estimate)

    # ------------------------------------------------------------------
    # Embed and store
    # ------------------------------------------------------------------

    async def embed_and_store(
        self,
        passages: list[Passage],
        embedding_provider: IEmbeddingProvider,
        vector_index: IVectorIndexProvider,
        workspace_id: str,
        in_flight: set[asyncio.Task[int]] | None = None,
    ) -> int:
        """Embed and upsert *passages* under *workspace_id*, one batch at a time.

        Each upsert runs as its own task.  When *in_flight* is given, the
        task is registered there and shielded: cancelling this coroutine
        (a deadline expiring) does not stop a write already handed to the
        index, and the caller can wait for it before withdrawing vectors.

        Returns
        -------
        int
            Number of passages stored.

        Raises
        ------
        BatchFailureError
            On the first batch whose embedding or upsert fails.  Nothing
            after that batch is attempted.
        """
        batches = [
            passages[start : start + self._batch_size]
            for start in range(0, len(passages), self._batch_size)
        ]
        batch_total = len(batches)
        stored = 0

        for batch_index, batch in enumerate(batches, start=1):
            try:
                vectors = await embedding_provider.embed([p.text for p in batch])
                if len(vectors) != len(batch):
                    raise EmbeddingError(
                        message=f"Expected {len(batch)} embeddings, received {len(vectors)}",
                        provider_name=embedding_provider.get_provider_name(),
                    )
                entries = [
                    VectorIndexEntry.from_passage(passage, vector)
                    for passage, vector in zip(batch, vectors, strict=True)
                ]
                await self._upsert(vector_index, workspace_id, entries, in_flight)
            except Exception as exc:
                logger.error(
                    "embedding_batch_failed",
                    workspace_id=workspace_id,
                    batch_index=batch_index,
                    batch_total=batch_total,
                    error=str(exc),
                )
                raise BatchFailureError(
                    batch_index=batch_index,
                    batch_total=batch_total,
                    cause=exc,
                    provider_name=getattr(exc, "provider_name", None),
                ) from exc

            stored += len(batch)
            logger.info(
                "embedding_batch_stored",
                workspace_id=workspace_id,
                batch_index=batch_index,
                batch_total=batch_total,
                passages=len(batch),
            )

            if batch_index < batch_total and self._batch_delay_seconds > 0:
                await asyncio.sleep(self._batch_delay_seconds)

        return stored

    @staticmethod
    async def _upsert(
        vector_index: IVectorIndexProvider,
        workspace_id: str,
        entries: list[VectorIndexEntry],
        in_flight: set[asyncio.Task[int]] | None,
    ) -> int:
        write = asyncio.ensure_future(vector_index.upsert(workspace_id, entries))
        if in_flight is None:
            return await write
        in_flight.add(write)
        return await asyncio.shield(write)
