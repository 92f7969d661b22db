"""``nomic-embed-text`` served by a local Ollama instance (768 dimensions).

Ollama exposes an OpenAI-compatible ``/v1/embeddings`` route, so this
adapter reuses the shared request loop and only adds the Ollama-specific
URL handling and health check.
"""

from __future__ import annotations

import httpx
import openai

from studyrag.config.settings import Settings
from studyrag.providers.embedding.openai_embedding_provider import (
    OpenAICompatibleEmbeddingProvider,
)

_OLLAMA_REQUEST_LIMIT = 512


class NomicEmbeddingProvider(OpenAICompatibleEmbeddingProvider):
    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        super().__init__(
            # Ollama ignores the key but the client requires one.
            client=openai.AsyncOpenAI(base_url=f"{self._base_url}/v1", api_key="ollama"),
            model="nomic-embed-text",
            dimension=768,
            provider_name="nomic_embedding",
            request_limit=_OLLAMA_REQUEST_LIMIT,
        )

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server answers on ``/api/tags``."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
        return response.status_code == 200
