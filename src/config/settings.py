"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (in priority order):
#
#   1. **Environment variables** — e.g., OLLAMA_BASE_URL=http://gpu-box:11434
#   2. **.env file** — key=value lines in the project root .env file
#
# Field `ollama_base_url` maps to env var `OLLAMA_BASE_URL`.
# Defaults below apply when neither source sets a value.
# ──────────────────────────────────────────────────────────────────────
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """signal-vector-db application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding service ===
    ollama_base_url: str = "http://localhost:11434"
    embedding_model: str = "nomic-embed-text"
    embedding_dimension: int = Field(default=768, gt=0)
    embedding_timeout: float = Field(default=30.0, gt=0)  # seconds per request
    # Total attempts per chunk (first try included) on transient failures.
    embedding_max_attempts: int = Field(default=3, ge=1)
    embedding_retry_backoff: float = Field(default=1.0, ge=0)  # seconds * attempt
    # Concurrent embedding calls within one message. 1 = strictly sequential.
    embedding_concurrency: int = Field(default=1, ge=1)

    # === Chunking ===
    chunk_target_tokens: int = Field(default=512, ge=2)
    token_encoding: str = "cl100k_base"

    # === Embedding store ===
    store_backend: Literal["sqlite", "chromadb"] = "sqlite"
    sqlite_db_path: str = "data/embeddings.db"
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "signal_messages"

    # === Upstream collaborators ===
    attachments_dir: str = "attachments"
    # Bound on waiting for a contacts-sync confirmation after sending.
    confirmation_timeout: float = Field(default=60.0, gt=0)

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"
