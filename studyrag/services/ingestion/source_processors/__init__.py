"""Per-format source processors used by the text extractor.

Each processor exposes ``async extract(file_path) -> str``.
"""

from studyrag.services.ingestion.source_processors.docx_processor import DOCXProcessor
from studyrag.services.ingestion.source_processors.pdf_processor import PDFProcessor
from studyrag.services.ingestion.source_processors.text_processor import TextProcessor

__all__ = ["DOCXProcessor", "PDFProcessor", "TextProcessor"]
