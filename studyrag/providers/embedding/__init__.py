"""Embedding provider implementations.

Both adapters share :class:`OpenAICompatibleEmbeddingProvider`'s request
loop.  In selection order:
    1. OpenAIEmbeddingProvider -- any OpenAI-compatible embeddings endpoint
       (OpenAI text-embedding-3-small, Gemini text-embedding-004 via
       OPENAI_BASE_URL).  Requires an API key.
    2. NomicEmbeddingProvider  -- nomic-embed-text via Ollama (768 dims).
       Free and local, but requires a running Ollama server.
"""

from studyrag.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from studyrag.providers.embedding.openai_embedding_provider import (
    OpenAICompatibleEmbeddingProvider,
    OpenAIEmbeddingProvider,
)

__all__ = ["NomicEmbeddingProvider", "OpenAICompatibleEmbeddingProvider", "OpenAIEmbeddingProvider"]
