"""Text extraction front door: resolve a document's type, dispatch to the
matching source processor, and return one text string.

Accepted declared types are short names (``pdf``, ``docx``, ``txt``),
their MIME types, or file extensions.  An empty declared type falls back
to the file's extension.  Anything else raises
:class:`UnsupportedTypeError` before the file is touched.

Extraction has no side effects beyond its return value; document status
belongs to the orchestrator.
"""

from __future__ import annotations

from pathlib import Path

import structlog

from studyrag.config.settings import Settings
from studyrag.services.ingestion.source_processors import (
    DOCXProcessor,
    PDFProcessor,
    TextProcessor,
)
from studyrag.utils.errors import ExtractionError, UnsupportedTypeError

logger = structlog.get_logger(logger_name=__name__)

SUPPORTED_TYPES = ("pdf", "docx", "txt")

_TYPE_ALIASES: dict[str, str] = {
    "pdf": "pdf",
    ".pdf": "pdf",
    "application/pdf": "pdf",
    "docx": "docx",
    ".docx": "docx",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "txt": "txt",
    ".txt": "txt",
    "text": "txt",
    "text/plain": "txt",
}


def resolve_document_type(declared_type: str, file_path: str = "") -> str:
    """Map a declared type (or the file extension) to ``pdf``/``docx``/``txt``.

    Raises
    ------
    UnsupportedTypeError
        If neither the declared type nor the extension is supported.
    """
    candidate = (declared_type or "").strip().lower()
    if not candidate:
        candidate = Path(file_path).suffix.lower()
    # MIME parameters such as "text/plain; charset=utf-8"
    candidate = candidate.split(";", 1)[0].strip()

    resolved = _TYPE_ALIASES.get(candidate)
    if resolved is None:
        raise UnsupportedTypeError(
            message=(
                f"Unsupported document type {declared_type or candidate!r}; "
                f"expected one of {', '.join(SUPPORTED_TYPES)}"
            )
        )
    return resolved


class TextExtractor:
    """Converts a file on disk into text, by type.

    Parameters
    ----------
    pdf_processor, docx_processor, text_processor:
        Per-format processors; defaults use the module constants.
    """

    def __init__(
        self,
        pdf_processor: PDFProcessor | None = None,
        docx_processor: DOCXProcessor | None = None,
        text_processor: TextProcessor | None = None,
    ) -> None:
        self._processors = {
            "pdf": pdf_processor or PDFProcessor(),
            "docx": docx_processor or DOCXProcessor(),
            "txt": text_processor or TextProcessor(),
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> TextExtractor:
        """Build an extractor whose thresholds come from *settings*."""
        return cls(
            pdf_processor=PDFProcessor(
                large_file_bytes=settings.pdf_large_file_bytes,
                page_batch_size=settings.pdf_page_batch_size,
                batch_pause_seconds=settings.pdf_batch_pause_seconds,
                spaced_token_threshold=settings.spaced_token_threshold,
            ),
            docx_processor=DOCXProcessor(min_ascii_ratio=settings.docx_min_ascii_ratio),
        )

    async def extract(self, file_path: str, declared_type: str = "") -> str:
        """Return the text of *file_path*.

        Raises
        ------
        UnsupportedTypeError
            If the type is not pdf, docx or txt.
        ExtractionError
            If the file is missing or cannot be decoded.
        """
        doc_type = resolve_document_type(declared_type, file_path)
        if not Path(file_path).is_file():
            raise ExtractionError(message=f"File not found: {file_path}")

        text = await self._processors[doc_type].extract(file_path)
        logger.info(
            "text_extracted",
            file_path=file_path,
            doc_type=doc_type,
            chars=len(text),
        )
        return text
