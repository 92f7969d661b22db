"""Recursive, separator-layered text chunking with overlapping windows.

Splits extracted document text into passages of at most ``chunk_size``
characters, with neighbouring passages sharing up to ``overlap``
characters so a sentence that straddles a boundary is still whole in at
least one passage.

Separators are tried in priority order: paragraph break, line break,
space, and finally the empty string (a hard character split).  Text is
split on the highest-priority separator it contains; only pieces that
are still too long are split again with the next separator down.  Small
pieces are then greedily merged back together up to ``chunk_size``.

Because every separator except the last is a whitespace run, dropping
the overlapping prefix of each passage and concatenating the rest
reproduces the input up to whitespace.
"""

from __future__ import annotations

import structlog

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", " ", "")


class TextChunker:
    """Splits text into ordered, overlapping passages.

    Parameters
    ----------
    chunk_size:
        Maximum characters per passage (default 1000).
    overlap:
        Maximum characters shared by consecutive passages (default 200).
        Must be smaller than ``chunk_size``.
    separators:
        Separators in priority order.  Ending with ``""`` guarantees every
        passage fits ``chunk_size``.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        overlap: int = 200,
        separators: tuple[str, ...] = DEFAULT_SEPARATORS,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError(
                f"overlap must be in [0, chunk_size), got overlap={overlap} chunk_size={chunk_size}"
            )
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._separators = tuple(separators) or DEFAULT_SEPARATORS

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def split(self, text: str) -> list[str]:
        """Split *text* into ordered passage texts.

        Empty or whitespace-only input yields an empty list.
        """
        if not text or not text.strip():
            return []

        passages = [p for p in self._split_text(text, list(self._separators)) if p]
        logger.debug(
            "chunking_complete",
            num_passages=len(passages),
            text_length=len(text),
            avg_chars=sum(len(p) for p in passages) // len(passages) if passages else 0,
        )
        return passages

    # ------------------------------------------------------------------
    # Recursive splitting
    # ------------------------------------------------------------------

    def _split_text(self, text: str, separators: list[str]) -> list[str]:
        """Split on the best available separator, recursing on oversized pieces."""
        separator = separators[-1]
        lower_separators: list[str] = []
        for i, candidate in enumerate(separators):
            if candidate == "":
                separator = candidate
                break
            if candidate in text:
                separator = candidate
                lower_separators = separators[i + 1 :]
                break

        pieces = text.split(separator) if separator else list(text)
        pieces = [p for p in pieces if p]

        passages: list[str] = []
        pending: list[str] = []
        for piece in pieces:
            if len(piece) < self._chunk_size:
                pending.append(piece)
                continue

            if pending:
                passages.extend(self._merge_pieces(pending, separator))
                pending = []

            if lower_separators:
                passages.extend(self._split_text(piece, lower_separators))
            else:
                # Unsplittable token longer than chunk_size.
                passages.append(piece)

        if pending:
            passages.extend(self._merge_pieces(pending, separator))
        return passages

    # ------------------------------------------------------------------
    # Window accumulation
    # ------------------------------------------------------------------

    def _merge_pieces(self, pieces: list[str], separator: str) -> list[str]:
        """Greedily pack *pieces* into windows, carrying an overlap tail.

        When adding the next piece would exceed ``chunk_size``, the current
        window is flushed and pieces are dropped from its front until what
        remains is within ``overlap`` and leaves room for the next piece.
        """
        sep_len = len(separator)
        windows: list[str] = []
        current: list[str] = []
        total = 0

        for piece in pieces:
            piece_len = len(piece)
            if total + piece_len + (sep_len if current else 0) > self._chunk_size:
                if current:
                    window = self._join(current, separator)
                    if window:
                        windows.append(window)
                    while total > self._overlap or (
                        total + piece_len + (sep_len if current else 0) > self._chunk_size
                        and total > 0
                    ):
                        total -= len(current[0]) + (sep_len if len(current) > 1 else 0)
                        current.pop(0)
            current.append(piece)
            total += piece_len + (sep_len if len(current) > 1 else 0)

        window = self._join(current, separator)
        if window:
            windows.append(window)
        return windows

    @staticmethod
    def _join(pieces: list[str], separator: str) -> str:
        return separator.join(pieces).strip()
