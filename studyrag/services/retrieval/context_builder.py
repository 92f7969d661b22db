"""Prompt fragments built from retrieved passages.

Generation consumers (chat answers, quiz and summary generation) paste
these blocks into their prompts.
"""

from __future__ import annotations

from studyrag.models.rag import RetrievedPassage

CONTEXT_SEPARATOR = "\n\n---\n\n"


def build_context_block(passages: list[RetrievedPassage]) -> str:
    """Render passages as numbered ``[Context N]`` blocks, best first."""
    return CONTEXT_SEPARATOR.join(
        f"[Context {index}]\n{passage.text}"
        for index, passage in enumerate(passages, start=1)
    )


def build_excerpt_block(passages: list[RetrievedPassage]) -> str:
    """Render passages with their position in the source document.

    Each block is headed ``--- Chunk N (ordinal/total) ---`` so a
    summarizer can tell where in the document an excerpt came from.
    """
    blocks = []
    for index, passage in enumerate(passages, start=1):
        ordinal = passage.metadata.get("ordinal", index - 1)
        total = passage.metadata.get("total", len(passages))
        blocks.append(f"--- Chunk {index} ({ordinal}/{total}) ---\n{passage.text.strip()}")
    return "\n\n".join(blocks)
