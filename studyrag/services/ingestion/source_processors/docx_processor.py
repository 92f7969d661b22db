"""Source processor for DOCX files.

Two extraction routes, tried in order:

1. **HTML route** -- mammoth converts the document to semantic HTML and
   BeautifulSoup strips the tags, keeping one paragraph per block.
2. **Raw route** -- python-docx reads paragraph text straight from the
   document XML.

The HTML route keeps list and heading structure better, but on some
documents it mangles the encoding.  Its output is rejected in favour of
the raw route when less than ``min_ascii_ratio`` of its characters are
printable ASCII, or when mammoth fails outright.
"""

from __future__ import annotations

import asyncio

import docx
import mammoth
import structlog
from bs4 import BeautifulSoup

from studyrag.utils.errors import ExtractionError
from studyrag.utils.text_normalizer import printable_ascii_ratio

logger = structlog.get_logger(logger_name=__name__)

MIN_ASCII_RATIO = 0.7


class DOCXProcessor:
    """Extracts paragraph text from DOCX files."""

    def __init__(self, min_ascii_ratio: float = MIN_ASCII_RATIO) -> None:
        self._min_ascii_ratio = min_ascii_ratio

    async def extract(self, file_path: str) -> str:
        """Return the document's text, one paragraph per ``\\n\\n`` block.

        Raises
        ------
        ExtractionError
            If the raw route is needed and python-docx cannot read the file.
        """
        html_text = await asyncio.to_thread(self._extract_html_text, file_path)
        if html_text is not None:
            ratio = printable_ascii_ratio(html_text)
            if ratio >= self._min_ascii_ratio:
                return html_text
            logger.info(
                "docx_html_rejected",
                file_path=file_path,
                ascii_ratio=round(ratio, 3),
                min_ascii_ratio=self._min_ascii_ratio,
            )

        return await asyncio.to_thread(self._extract_raw_text, file_path)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_html_text(file_path: str) -> str | None:
        """Convert via mammoth and strip tags; ``None`` if mammoth fails."""
        try:
            with open(file_path, "rb") as docx_file:
                result = mammoth.convert_to_html(docx_file)
        except Exception as exc:
            logger.warning("docx_html_extract_failed", file_path=file_path, error=str(exc))
            return None

        soup = BeautifulSoup(result.value, "html.parser")
        lines = (line.strip() for line in soup.get_text(separator="\n").splitlines())
        return "\n\n".join(line for line in lines if line)

    @staticmethod
    def _extract_raw_text(file_path: str) -> str:
        """Read paragraph text with python-docx."""
        try:
            document = docx.Document(file_path)
        except Exception as exc:
            raise ExtractionError(
                message=f"Cannot read DOCX {file_path}: {exc}",
                provider_name="python-docx",
            ) from exc

        text = "\n\n".join(p.text.strip() for p in document.paragraphs if p.text.strip())
        logger.info("docx_raw_extracted", file_path=file_path, paragraphs=len(document.paragraphs))
        return text
