"""Document ingestion pipeline for studyrag workspaces.

Orchestrates the full pipeline: **extract -> chunk -> embed -> store**.

1. **Extract** (text_extractor.py / TextExtractor) -- Format-specific
   source processors turn a PDF, DOCX or TXT file into one normalized
   text string, repairing over-spaced PDF text along the way.

2. **Chunk** (chunker.py / TextChunker) -- Splits the text into ~1000
   character passages with ~200 characters of overlap, preferring
   paragraph, then line, then word boundaries.

3. **Embed + Store** (embedding_batcher.py / EmbeddingBatcher) -- Embeds
   passages five at a time with a pause between batches and upserts
   them into the workspace's vector index namespace.

The IngestionService class drives all three and owns the document's
status transitions and the adaptive processing deadline.
"""

from studyrag.services.ingestion.chunker import TextChunker
from studyrag.services.ingestion.embedding_batcher import EmbeddingBatcher
from studyrag.services.ingestion.ingestion_service import IngestionService
from studyrag.services.ingestion.text_extractor import TextExtractor, resolve_document_type

__all__ = [
    "EmbeddingBatcher",
    "IngestionService",
    "TextChunker",
    "TextExtractor",
    "resolve_document_type",
]
