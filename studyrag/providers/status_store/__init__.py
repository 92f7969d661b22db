"""Document status store implementations."""

from studyrag.providers.status_store.sqlite_status_store import SQLiteDocumentStatusStore

__all__ = ["SQLiteDocumentStatusStore"]
