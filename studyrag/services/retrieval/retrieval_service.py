"""Multi-query retrieval aggregator.

One call to :meth:`RetrievalService.retrieve`:

1. Embeds the query and runs the **primary** similarity query with a
   generous ``top_k``.  This is the dominant relevance signal and the only
   step whose failure fails the call.
2. Runs up to ``max_expansions`` **expansion probes** from the
   :class:`ExpansionPolicy` concurrently, each with a smaller ``top_k`` and
   its own timeout.  A probe that fails or times out is logged and skipped.
3. Merges primary and probe hits, stable-sorts them by descending score,
   and drops near-duplicates by a normalized text prefix.
4. Returns at most ``limit`` passages, best first.

Deduplication keeps the first occurrence of each key.  Because the merged
list is sorted before deduplication, the first occurrence is always the
best-scored copy of a passage; among equal scores the primary query's
copy wins over a probe's.

The order sort, deduplicate, truncate is load-bearing.  Deduplicating the
concatenated list first would keep the primary query's copy of every
passage it returned.  When the primary ``top_k`` covers the whole
workspace, that includes its near-zero-score copy of a passage an
expansion probe matched strongly, and the probe could then never lift
that passage into the results.
"""

from __future__ import annotations

import re
import time
from typing import TYPE_CHECKING, Any

import structlog

from studyrag.models.rag import RetrievedPassage
from studyrag.services.retrieval.expansion import CHAT_POLICY, ExpansionPolicy
from studyrag.utils.concurrency import parallel_query

if TYPE_CHECKING:
    from studyrag.config.settings import Settings
    from studyrag.interfaces.embedding_provider import IEmbeddingProvider
    from studyrag.interfaces.vector_index_provider import IVectorIndexProvider

logger = structlog.get_logger(logger_name=__name__)

DEDUP_PREFIX_CHARS = 100

_WHITESPACE_RE = re.compile(r"\s+")


def dedup_key(text: str, prefix_chars: int = DEDUP_PREFIX_CHARS) -> str:
    """Lower-cased, whitespace-collapsed first *prefix_chars* characters of *text*.

    Two passages with the same opening but different tails share a key.
    That false-duplicate tolerance is accepted in exchange for a cheap,
    order-independent comparison.
    """
    return _WHITESPACE_RE.sub(" ", text.lower()).strip()[:prefix_chars]


def deduplicate_passages(
    passages: list[RetrievedPassage], prefix_chars: int = DEDUP_PREFIX_CHARS
) -> list[RetrievedPassage]:
    """Keep the first passage for each :func:`dedup_key`, preserving order.

    Idempotent: deduplicating an already deduplicated list returns it
    unchanged.
    """
    seen: set[str] = set()
    unique: list[RetrievedPassage] = []
    for passage in passages:
        key = dedup_key(passage.text, prefix_chars)
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(passage)
    return unique


class RetrievalService:
    """Turns a query into a ranked, deduplicated, capped passage list.

    Parameters
    ----------
    embedding_provider:
        Must be the provider the workspace's passages were embedded with.
    vector_index:
        Workspace-scoped vector index.
    policy:
        Default expansion policy; overridable per call.
    primary_top_k:
        Candidates requested by the primary query.
    expansion_top_k:
        Candidates requested by each expansion probe.
    max_expansions:
        Upper bound on probes per call.
    probe_timeout_seconds:
        Deadline for each probe (embedding plus query).
    default_limit:
        Result cap when the caller passes none.
    dedup_prefix_chars:
        Length of the normalized prefix used as the dedup key.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_index: IVectorIndexProvider,
        policy: ExpansionPolicy = CHAT_POLICY,
        primary_top_k: int = 50,
        expansion_top_k: int = 30,
        max_expansions: int = 8,
        probe_timeout_seconds: float = 10.0,
        default_limit: int = 20,
        dedup_prefix_chars: int = DEDUP_PREFIX_CHARS,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._vector_index = vector_index
        self._policy = policy
        self._primary_top_k = primary_top_k
        self._expansion_top_k = expansion_top_k
        self._max_expansions = max_expansions
        self._probe_timeout_seconds = probe_timeout_seconds
        self._default_limit = default_limit
        self._dedup_prefix_chars = dedup_prefix_chars

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        embedding_provider: IEmbeddingProvider,
        vector_index: IVectorIndexProvider,
        policy: ExpansionPolicy = CHAT_POLICY,
    ) -> RetrievalService:
        return cls(
            embedding_provider=embedding_provider,
            vector_index=vector_index,
            policy=policy,
            primary_top_k=settings.retrieval_primary_top_k,
            expansion_top_k=settings.retrieval_expansion_top_k,
            max_expansions=settings.retrieval_max_expansions,
            probe_timeout_seconds=settings.retrieval_probe_timeout_seconds,
            default_limit=settings.retrieval_default_limit,
            dedup_prefix_chars=settings.retrieval_dedup_prefix_chars,
        )

    @property
    def policy(self) -> ExpansionPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def retrieve(
        self,
        query: str,
        workspace_id: str,
        limit: int | None = None,
        policy: ExpansionPolicy | None = None,
        document_id: str | None = None,
    ) -> list[RetrievedPassage]:
        """Return up to *limit* passages relevant to *query*, best first.

        Parameters
        ----------
        query:
            Natural-language question or topic.
        workspace_id:
            Namespace to search; nothing outside it is ever returned.
        limit:
            Maximum passages returned (defaults to ``default_limit``).
        policy:
            Expansion policy for this call (defaults to the service's).
        document_id:
            Restrict every query to one document's passages.

        Raises
        ------
        RAGError
            If embedding the query or the primary index query fails.
            Expansion probe failures never raise.
        """
        limit = self._default_limit if limit is None else limit
        if limit <= 0 or not query.strip():
            return []

        policy = policy or self._policy
        filters = {"document_id": document_id} if document_id else None
        start = time.monotonic()

        query_vector = await self._embedding_provider.embed_single(query)
        primary = await self._vector_index.query(
            workspace_id, query_vector, top_k=self._primary_top_k, filters=filters
        )
        merged = [p.model_copy(update={"matched_query": query}) for p in primary]

        probes = policy.probes_for(query, max_probes=self._max_expansions)
        probe_hits = await parallel_query(
            self._run_probe,
            [{"probe": probe, "workspace_id": workspace_id, "filters": filters} for probe in probes],
            timeout=self._probe_timeout_seconds,
            logger=logger,
            error_msg="expansion_probe_failed",
        )
        for _, hits in probe_hits:
            merged.extend(hits)

        # sorted() is stable, so primary hits precede probe hits at equal score.
        ranked = sorted(merged, key=lambda p: p.score, reverse=True)
        results = deduplicate_passages(ranked, self._dedup_prefix_chars)[:limit]

        logger.info(
            "retrieval_complete",
            workspace_id=workspace_id,
            policy=policy.name,
            primary_hits=len(primary),
            probes=len(probes),
            probes_ok=len(probe_hits),
            merged=len(merged),
            returned=len(results),
            elapsed_ms=round((time.monotonic() - start) * 1000, 1),
        )
        return results

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_probe(
        self,
        probe: str,
        workspace_id: str,
        filters: dict[str, Any] | None,
    ) -> list[RetrievedPassage]:
        vector = await self._embedding_provider.embed_single(probe)
        hits = await self._vector_index.query(
            workspace_id, vector, top_k=self._expansion_top_k, filters=filters
        )
        return [hit.model_copy(update={"matched_query": probe}) for hit in hits]
