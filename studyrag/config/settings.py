"""Application settings loaded from environment variables via pydantic-settings.

Two sources, in priority order:

  1. Environment variables, e.g. ``OPENAI_API_KEY=sk-abc123``
  2. ``.env`` file in the working directory

Field ``chunk_size`` maps to env var ``CHUNK_SIZE`` and so on.  Defaults
apply when neither source sets a value.  Every pipeline constant that was
tuned empirically (batch size, pacing delay, timeout formula, PDF paging)
lives here so it can be recalibrated without touching pipeline code.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """studyrag settings.

    Environment variables override defaults.  Loaded from .env when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding Providers ===
    # Empty string = "not configured"; the builder in main.py skips it.
    openai_api_key: str = ""
    openai_base_url: str = ""  # e.g. https://generativelanguage.googleapis.com/v1beta/openai/
    openai_embedding_model: str = ""  # e.g. text-embedding-004 (768 dims)
    ollama_base_url: str = "http://localhost:11434"
    embedding_provider: str = "auto"  # auto | openai | nomic

    # === Vector Index ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_host: str = ""  # set to use a remote chroma server instead of local files
    chromadb_port: int = 8000
    chromadb_collection_prefix: str = "workspace"

    # === Document Status Store ===
    status_db_path: str = "data/documents.db"

    # === Extraction ===
    pdf_large_file_bytes: int = Field(default=2 * 1024 * 1024, ge=0)
    pdf_page_batch_size: int = Field(default=10, ge=1)
    pdf_batch_pause_seconds: float = Field(default=0.1, ge=0.0)
    spaced_token_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    docx_min_ascii_ratio: float = Field(default=0.7, ge=0.0, le=1.0)

    # === Chunking ===
    chunk_size: int = Field(default=1000, ge=1)
    chunk_overlap: int = Field(default=200, ge=0)

    # === Embedding Batches ===
    embedding_batch_size: int = Field(default=5, ge=1)
    embedding_batch_delay_seconds: float = Field(default=2.0, ge=0.0)

    # === Adaptive Timeout ===
    # estimate = baseline + factor * (batches * per_batch + (batches - 1) * delay), capped
    ingestion_timeout_baseline_seconds: float = Field(default=300.0, gt=0.0)
    ingestion_timeout_per_batch_seconds: float = Field(default=5.0, ge=0.0)
    ingestion_timeout_safety_factor: float = Field(default=1.5, ge=1.0)
    ingestion_timeout_cap_seconds: float = Field(default=1800.0, gt=0.0)

    # === Retrieval ===
    retrieval_primary_top_k: int = Field(default=50, ge=1)
    retrieval_expansion_top_k: int = Field(default=30, ge=1)
    retrieval_max_expansions: int = Field(default=8, ge=0)
    retrieval_probe_timeout_seconds: float = Field(default=10.0, gt=0.0)
    retrieval_default_limit: int = Field(default=20, ge=1)
    retrieval_dedup_prefix_chars: int = Field(default=100, ge=1)

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_embedding_providers(self) -> list[str]:
        """Return embedding provider names that have the configuration they need."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("nomic")
        return providers
