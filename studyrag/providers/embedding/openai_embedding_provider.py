"""OpenAI-compatible embedding adapters.

:class:`OpenAICompatibleEmbeddingProvider` holds the request loop shared by
every backend that speaks the ``/embeddings`` wire format: passage text is
clipped, blank inputs are padded, large inputs are sent in slices, and SDK
failures surface as :class:`EmbeddingError`.

:class:`OpenAIEmbeddingProvider` configures it for OpenAI itself or for any
endpoint selected through ``openai_base_url``, including Gemini's
(``text-embedding-004``, 768 dimensions).
"""

from __future__ import annotations

import openai
import structlog

from studyrag.config.settings import Settings
from studyrag.interfaces.embedding_provider import IEmbeddingProvider
from studyrag.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

# Passages longer than this are clipped before sending.
MAX_INPUT_CHARS = 8000

_OPENAI_REQUEST_LIMIT = 2048
_DEFAULT_MODEL = "text-embedding-3-small"

_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "text-embedding-004": 768,
    "models/text-embedding-004": 768,
    "nomic-embed-text": 768,
}


class OpenAICompatibleEmbeddingProvider(IEmbeddingProvider):
    """Shared request loop for ``/embeddings``-style backends.

    Parameters
    ----------
    client:
        An ``openai.AsyncOpenAI`` pointed at the backend.
    model:
        Embedding model name sent with every request.
    dimension:
        Vector length the model produces.
    provider_name:
        Label used in logs and in raised errors.
    request_limit:
        Maximum number of inputs per request; larger calls are sliced.
    """

    def __init__(
        self,
        client: openai.AsyncOpenAI,
        model: str,
        dimension: int,
        provider_name: str,
        request_limit: int = _OPENAI_REQUEST_LIMIT,
    ) -> None:
        self._client = client
        self._model = model
        self._dimension = dimension
        self._provider_name = provider_name
        self._request_limit = request_limit

    @staticmethod
    def _prepare_inputs(texts: list[str]) -> list[str]:
        # The API rejects empty strings outright.
        return [t[:MAX_INPUT_CHARS] if t.strip() else " " for t in texts]

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in order, one request per ``request_limit`` inputs."""
        if not texts:
            return []

        inputs = self._prepare_inputs(texts)
        vectors: list[list[float]] = []
        try:
            for start in range(0, len(inputs), self._request_limit):
                chunk = inputs[start : start + self._request_limit]
                response = await self._client.embeddings.create(input=chunk, model=self._model)
                vectors.extend(item.embedding for item in response.data)
        except openai.APIError as exc:
            logger.warning(
                "embedding_request_failed",
                provider=self._provider_name,
                inputs=len(inputs),
                error=str(exc),
            )
            raise EmbeddingError(
                message=f"Embedding request failed: {exc}",
                provider_name=self._provider_name,
            ) from exc

        if len(vectors) != len(inputs):
            raise EmbeddingError(
                message=f"Expected {len(inputs)} embeddings, received {len(vectors)}",
                provider_name=self._provider_name,
            )
        logger.debug(
            "embedding_request_complete",
            provider=self._provider_name,
            model=self._model,
            inputs=len(inputs),
        )
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_name


class OpenAIEmbeddingProvider(OpenAICompatibleEmbeddingProvider):
    """OpenAI, or another hosted endpoint configured through ``openai_base_url``.

    ``text-embedding-3-small`` (1536 dims) is used unless
    ``openai_embedding_model`` names another model.
    """

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key
        client_kwargs: dict = {"api_key": self._api_key or "unset"}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        model = settings.openai_embedding_model or _DEFAULT_MODEL
        super().__init__(
            client=openai.AsyncOpenAI(**client_kwargs),
            model=model,
            dimension=_MODEL_DIMENSIONS.get(model, 768),
            provider_name=(
                "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
            ),
        )

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)
