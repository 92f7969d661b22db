"""Source processor for PDF files.

Reads PDFs with PyMuPDF (fitz) and returns one normalized text string.
Two read paths, chosen by file size:

* **single pass** -- files up to ``large_file_bytes`` (2 MiB) have every
  page read in one go.
* **paged** -- larger files are read ``page_batch_size`` pages at a time
  with a short pause between batches, which bounds peak memory and lets
  other documents' pipelines run between batches.

Both paths finish with :func:`repair_spaced_text`, which rebuilds words
from the one-character-per-token output some PDF producers generate.
Scanned PDFs without a text layer come back empty; that is reported as
"no content" by the orchestrator, not handled here.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from studyrag.utils.errors import ExtractionError
from studyrag.utils.text_normalizer import (
    SPACED_TOKEN_THRESHOLD,
    normalize_whitespace,
    repair_spaced_text,
)

logger = structlog.get_logger(logger_name=__name__)

LARGE_FILE_BYTES = 2 * 1024 * 1024
PAGE_BATCH_SIZE = 10
BATCH_PAUSE_SECONDS = 0.1


class PDFProcessor:
    """Extracts normalized text from PDF files.

    Parameters
    ----------
    large_file_bytes:
        Files strictly larger than this use the paged read path.
    page_batch_size:
        Pages per batch on the paged path.
    batch_pause_seconds:
        Pause between page batches on the paged path.
    spaced_token_threshold:
        Single-character token fraction that triggers spaced-text repair.
    """

    def __init__(
        self,
        large_file_bytes: int = LARGE_FILE_BYTES,
        page_batch_size: int = PAGE_BATCH_SIZE,
        batch_pause_seconds: float = BATCH_PAUSE_SECONDS,
        spaced_token_threshold: float = SPACED_TOKEN_THRESHOLD,
    ) -> None:
        self._large_file_bytes = large_file_bytes
        self._page_batch_size = max(1, page_batch_size)
        self._batch_pause_seconds = batch_pause_seconds
        self._spaced_token_threshold = spaced_token_threshold

    async def extract(self, file_path: str) -> str:
        """Read *file_path* and return repaired, whitespace-normalized text.

        Raises
        ------
        ExtractionError
            If the file cannot be opened or a page cannot be decoded.
        """
        try:
            size = Path(file_path).stat().st_size
            doc = await asyncio.to_thread(fitz.open, file_path)
        except Exception as exc:
            raise ExtractionError(
                message=f"Cannot open PDF {file_path}: {exc}",
                provider_name="pymupdf",
            ) from exc

        try:
            if size > self._large_file_bytes:
                raw = await self._extract_paged(doc, file_path, size)
            else:
                logger.info(
                    "pdf_extract_single_pass",
                    file_path=file_path,
                    size_bytes=size,
                    pages=doc.page_count,
                )
                raw = await asyncio.to_thread(self._read_pages, doc, 0, doc.page_count)
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(
                message=f"Cannot decode PDF {file_path}: {exc}",
                provider_name="pymupdf",
            ) from exc
        finally:
            doc.close()

        normalized = normalize_whitespace(raw)
        repaired = repair_spaced_text(normalized, threshold=self._spaced_token_threshold)
        if len(repaired) != len(normalized):
            logger.info(
                "spaced_text_repaired",
                file_path=file_path,
                chars_before=len(normalized),
                chars_after=len(repaired),
            )
        return repaired

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _extract_paged(self, doc: fitz.Document, file_path: str, size: int) -> str:
        """Read *doc* in page batches, pausing between batches."""
        page_count = doc.page_count
        batch_total = (page_count + self._page_batch_size - 1) // self._page_batch_size
        logger.info(
            "pdf_extract_paged",
            file_path=file_path,
            size_bytes=size,
            pages=page_count,
            batches=batch_total,
        )

        parts: list[str] = []
        for start in range(0, page_count, self._page_batch_size):
            end = min(start + self._page_batch_size, page_count)
            parts.append(await asyncio.to_thread(self._read_pages, doc, start, end))
            if end < page_count:
                await asyncio.sleep(self._batch_pause_seconds)
        return " ".join(p for p in parts if p)

    @staticmethod
    def _read_pages(doc: fitz.Document, start: int, end: int) -> str:
        """Return the text of pages ``[start, end)`` joined by single spaces."""
        texts: list[str] = []
        for page_num in range(start, end):
            text = doc[page_num].get_text("text").strip()
            if text:
                texts.append(text)
        return " ".join(texts)
