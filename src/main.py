"""signal-vector-db composition root.

Wires together every provider and service via constructor injection.
Configuration comes from ``config/config.yaml`` with ``.env`` /
environment overrides (see :mod:`src.config.loader`).

The CLI (``python -m src.cli``) and tests build their pipeline through
:func:`build_pipeline`.
"""

from __future__ import annotations

from typing import Any

import httpx

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_store_provider import IEmbeddingStore
from src.providers.attachments.local_attachment_store import LocalAttachmentStore
from src.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.classifier import MessageClassifier
from src.services.ingestion.ingestion_service import IngestionService
from src.services.ingestion.token_counter import TokenCounter
from src.services.receiver import StreamReceiver
from src.utils.errors import ConfigurationError
from src.utils.logging import get_logger

_logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(
    app_settings: Settings,
    http_client: httpx.AsyncClient | None = None,
) -> IEmbeddingProvider:
    """Return the Ollama embedding provider for *app_settings*."""
    return OllamaEmbeddingProvider(settings=app_settings, http_client=http_client)


def build_embedding_store(app_settings: Settings) -> IEmbeddingStore:
    """Select the embedding store backend named by ``store_backend``.

    ChromaDB is imported lazily so the default SQLite backend never pays
    for chromadb's import time.
    """
    if app_settings.store_backend == "sqlite":
        from src.providers.vector_store.sqlite_embedding_store import (
            SQLiteEmbeddingStore,
        )

        return SQLiteEmbeddingStore(
            db_path=app_settings.sqlite_db_path,
            dimension=app_settings.embedding_dimension,
        )

    if app_settings.store_backend == "chromadb":
        from src.providers.vector_store.chromadb_embedding_store import (
            ChromaDBEmbeddingStore,
        )

        return ChromaDBEmbeddingStore(
            persist_directory=app_settings.chromadb_persist_dir,
            collection_name=app_settings.chromadb_collection,
            dimension=app_settings.embedding_dimension,
        )

    raise ConfigurationError(
        message=f"Unknown store backend: {app_settings.store_backend!r}",
    )


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_pipeline(
    custom_settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    embedding_provider: IEmbeddingProvider | None = None,
    store: IEmbeddingStore | None = None,
    token_counter: TokenCounter | None = None,
) -> dict[str, Any]:
    """Construct and return all pipeline components with injected dependencies.

    Parameters
    ----------
    custom_settings:
        Application settings.  A fresh :class:`Settings` is read from the
        environment when not provided.
    http_client:
        Shared HTTP client for the embedding provider.
    embedding_provider:
        Replaces the Ollama provider (tests, alternative backends).
    store:
        Replaces the configured embedding store.
    token_counter:
        Replaces the tiktoken counter used for chunk budgets and stored
        token counts.

    Returns
    -------
    dict
        Component instances keyed by role name.  The store is returned
        uninitialized; callers ``await store.initialize()`` before use.
    """
    s = custom_settings or Settings()

    token_counter = token_counter or TokenCounter(encoding_name=s.token_encoding)
    classifier = MessageClassifier()
    chunker = TextChunker(token_counter=token_counter, target_tokens=s.chunk_target_tokens)
    provider = embedding_provider or _build_embedding_provider(s, http_client=http_client)
    embedding_store = store or build_embedding_store(s)

    ingestion_service = IngestionService(
        classifier=classifier,
        chunker=chunker,
        embedding_provider=provider,
        store=embedding_store,
        max_attempts=s.embedding_max_attempts,
        retry_backoff=s.embedding_retry_backoff,
        concurrency=s.embedding_concurrency,
    )
    attachment_store = LocalAttachmentStore(attachments_dir=s.attachments_dir)
    receiver = StreamReceiver(
        ingestion_service=ingestion_service,
        attachment_store=attachment_store,
        confirmation_timeout=s.confirmation_timeout,
    )

    _logger.debug(
        "pipeline_built",
        embedding=provider.get_provider_name(),
        store=embedding_store.get_provider_name(),
        target_tokens=s.chunk_target_tokens,
    )

    return {
        "token_counter": token_counter,
        "classifier": classifier,
        "chunker": chunker,
        "embedding_provider": provider,
        "store": embedding_store,
        "ingestion_service": ingestion_service,
        "attachment_store": attachment_store,
        "receiver": receiver,
        "settings": s,
    }
