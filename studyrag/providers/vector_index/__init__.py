"""Vector index provider implementations.

ChromaDB is the sole implementation: local persistent storage by default,
or a remote chroma server when CHROMADB_HOST is set.  Another backend
(Pinecone, Qdrant) plugs in by implementing IVectorIndexProvider and
registering it in studyrag/main.py.
"""

from studyrag.providers.vector_index.chromadb_provider import ChromaDBProvider

__all__ = ["ChromaDBProvider"]
