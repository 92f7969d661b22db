"""Public interface definitions for the external collaborators of studyrag.

Every external service the pipeline touches is reached through one of the
abstract base classes in this package; concrete adapters live in
``studyrag/providers/`` and are wired together in ``studyrag/main.py``.

    Interface               ->  Concrete implementations
    --------------------------------------------------------------
    IEmbeddingProvider      ->  OpenAIEmbeddingProvider, NomicEmbeddingProvider
    IVectorIndexProvider    ->  ChromaDBProvider
    IDocumentStatusStore    ->  SQLiteDocumentStatusStore
"""

from studyrag.interfaces.document_status_store import IDocumentStatusStore
from studyrag.interfaces.embedding_provider import IEmbeddingProvider
from studyrag.interfaces.vector_index_provider import IVectorIndexProvider

__all__ = ["IDocumentStatusStore", "IEmbeddingProvider", "IVectorIndexProvider"]
