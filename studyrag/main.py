"""Service container assembly for studyrag.

Wires providers and services together via dependency injection.  Callers
(the CLI, a web layer, tests) build one :class:`CoreServices` with
:func:`build_services` and pass it by reference; nothing in studyrag holds
global provider handles.

Construction failures surface immediately as :class:`ConfigurationError`
rather than as a deferred "not initialized" check at first use.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from studyrag.config.loader import load_config
from studyrag.config.settings import Settings
from studyrag.interfaces.document_status_store import IDocumentStatusStore
from studyrag.interfaces.embedding_provider import IEmbeddingProvider
from studyrag.interfaces.vector_index_provider import IVectorIndexProvider
from studyrag.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from studyrag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from studyrag.providers.status_store.sqlite_status_store import SQLiteDocumentStatusStore
from studyrag.providers.vector_index.chromadb_provider import ChromaDBProvider
from studyrag.services.ingestion.chunker import TextChunker
from studyrag.services.ingestion.embedding_batcher import EmbeddingBatcher
from studyrag.services.ingestion.ingestion_service import IngestionService
from studyrag.services.ingestion.text_extractor import TextExtractor
from studyrag.services.retrieval.expansion import policy_from_config
from studyrag.services.retrieval.retrieval_service import RetrievalService
from studyrag.utils.errors import ConfigurationError, StudyRAGError

logger = structlog.get_logger(logger_name=__name__)

_VERIFY_PROBE = "connection check"


@dataclass
class CoreServices:
    """Everything a caller needs to ingest and retrieve documents."""

    settings: Settings
    config: dict[str, Any]
    embedding_provider: IEmbeddingProvider
    vector_index: IVectorIndexProvider
    status_store: IDocumentStatusStore
    ingestion: IngestionService
    retrieval: RetrievalService


# ---------------------------------------------------------------------------
# Embedding provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider named by ``embedding_provider``.

    ``auto`` picks OpenAI/OpenAI-compatible when an API key is set, else
    Nomic via Ollama when the server answers.

    Raises
    ------
    ConfigurationError
        If the named provider is unknown or nothing is available.
    """
    choice = app_settings.embedding_provider.strip().lower()

    if choice == "openai":
        if not app_settings.openai_api_key:
            raise ConfigurationError(
                message="EMBEDDING_PROVIDER=openai requires OPENAI_API_KEY",
                provider_name="openai_embedding",
            )
        return OpenAIEmbeddingProvider(settings=app_settings)

    if choice == "nomic":
        return NomicEmbeddingProvider(settings=app_settings)

    if choice != "auto":
        raise ConfigurationError(
            message=f"Unknown EMBEDDING_PROVIDER {choice!r}; expected auto, openai or nomic"
        )

    if app_settings.openai_api_key:
        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider

    provider = NomicEmbeddingProvider(settings=app_settings)
    if provider.is_available():
        return provider

    raise ConfigurationError(
        message="No embedding provider available: set OPENAI_API_KEY or start Ollama"
    )


async def _verify_embedding(provider: IEmbeddingProvider) -> int:
    """Embed a probe string once; return the observed vector dimension."""
    try:
        vector = await provider.embed_single(_VERIFY_PROBE)
    except StudyRAGError as exc:
        raise ConfigurationError(
            message=f"Embedding provider failed its connection check: {exc.message}",
            provider_name=provider.get_provider_name(),
        ) from exc

    if not vector:
        raise ConfigurationError(
            message="Embedding provider returned an empty vector",
            provider_name=provider.get_provider_name(),
        )
    logger.info(
        "embedding_provider_verified",
        provider=provider.get_provider_name(),
        dimension=len(vector),
    )
    return len(vector)


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


async def build_services(
    app_settings: Settings | None = None,
    verify: bool = True,
    config_path: str = "config/config.yaml",
    embedding_provider: IEmbeddingProvider | None = None,
    vector_index: IVectorIndexProvider | None = None,
    status_store: IDocumentStatusStore | None = None,
) -> CoreServices:
    """Construct every provider and service from settings.

    Pre-built providers may be passed in to replace the configured ones.

    Parameters
    ----------
    app_settings:
        Settings to build from; read from the environment when omitted.
    verify:
        Embed a probe string before returning, so a dead provider fails
        here rather than on the first document.
    config_path:
        YAML file holding the retrieval expansion rules.

    Raises
    ------
    ConfigurationError
        If any provider cannot be constructed or fails verification.
    """
    app_settings = app_settings or Settings()
    config = load_config(config_path, settings=app_settings)

    try:
        chunker = TextChunker(
            chunk_size=app_settings.chunk_size,
            overlap=app_settings.chunk_overlap,
        )
    except ValueError as exc:
        raise ConfigurationError(message=f"Invalid chunking settings: {exc}") from exc

    embedder = embedding_provider or _build_embedding_provider(app_settings)
    dimension = await _verify_embedding(embedder) if verify else None

    if vector_index is None:
        try:
            vector_index = ChromaDBProvider(
                persist_directory=app_settings.chromadb_persist_dir,
                collection_prefix=app_settings.chromadb_collection_prefix,
                host=app_settings.chromadb_host,
                port=app_settings.chromadb_port,
                embedding_dimension=dimension,
            )
        except StudyRAGError as exc:
            raise ConfigurationError(
                message=f"Vector index unavailable: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

    if status_store is None:
        sqlite_store = SQLiteDocumentStatusStore(app_settings.status_db_path)
        try:
            await sqlite_store.initialize()
        except Exception as exc:
            raise ConfigurationError(
                message=f"Cannot open status database {app_settings.status_db_path}: {exc}",
                provider_name=sqlite_store.get_provider_name(),
            ) from exc
        status_store = sqlite_store

    ingestion = IngestionService(
        extractor=TextExtractor.from_settings(app_settings),
        chunker=chunker,
        batcher=EmbeddingBatcher.from_settings(app_settings),
        embedding_provider=embedder,
        vector_index=vector_index,
        status_store=status_store,
    )
    retrieval = RetrievalService.from_settings(
        app_settings,
        embedding_provider=embedder,
        vector_index=vector_index,
        policy=policy_from_config(config),
    )

    logger.info(
        "services_ready",
        embedding_provider=embedder.get_provider_name(),
        vector_index=vector_index.get_provider_name(),
        status_store=status_store.get_provider_name(),
    )
    return CoreServices(
        settings=app_settings,
        config=config,
        embedding_provider=embedder,
        vector_index=vector_index,
        status_store=status_store,
        ingestion=ingestion,
        retrieval=retrieval,
    )
