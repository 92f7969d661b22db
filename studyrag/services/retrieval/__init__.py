"""Semantic retrieval over a workspace's vector index.

:class:`RetrievalService` runs a primary query plus policy-driven
expansion probes, merges and deduplicates the hits, and returns a ranked,
capped passage list.  :mod:`context_builder` turns that list into the
prompt fragment generation consumers expect.
"""

from studyrag.services.retrieval.context_builder import build_context_block, build_excerpt_block
from studyrag.services.retrieval.expansion import (
    CHAT_POLICY,
    QUIZ_POLICY,
    SUMMARY_POLICY,
    ExpansionPolicy,
    ExpansionRule,
    extract_key_terms,
    get_policy,
    policy_from_config,
)
from studyrag.services.retrieval.retrieval_service import (
    RetrievalService,
    dedup_key,
    deduplicate_passages,
)

__all__ = [
    "CHAT_POLICY",
    "ExpansionPolicy",
    "ExpansionRule",
    "QUIZ_POLICY",
    "RetrievalService",
    "SUMMARY_POLICY",
    "build_context_block",
    "build_excerpt_block",
    "dedup_key",
    "deduplicate_passages",
    "extract_key_terms",
    "get_policy",
    "policy_from_config",
]
