"""ChromaDB embedding store adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IEmbeddingStore`
as an alternative to the default SQLite table.  Vectors are pre-computed
by the embedding provider; ChromaDB only stores them (cosine space).

Each record becomes one collection item:

* id        -- ``"{message_id}:{chunk_index}"`` (the natural key)
* document  -- the chunk text
* embedding -- the chunk vector
* metadata  -- the relational columns (``contact`` = receiver), with
  ``None`` values omitted and attachments JSON-encoded

Items are only ever added.  An id that already exists is counted as a
duplicate and its stored row is left untouched.
"""

from __future__ import annotations

import json
import os
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

# ChromaDB reads this before the client is built.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import structlog

from src.interfaces.vector_store_provider import IEmbeddingStore
from src.models.rag import (
    EmbeddingRecord,
    StoredEmbedding,
    StoreStats,
    WriteFailure,
    WriteResult,
)
from src.utils.errors import StoreUnavailableError

logger = structlog.get_logger(logger_name=__name__)

_PAGE_SIZE = 1000


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that is never called.

    Every item is added with an explicit vector, so ChromaDB must not load
    its default ONNX model.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "Embeddings are pre-computed; the collection must not embed text itself."
        )

    def name(self) -> str:
        return "noop_precomputed"


class ChromaDBEmbeddingStore(IEmbeddingStore):
    """Embedding store backed by a persistent ChromaDB collection."""

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "signal_messages",
        dimension: int = 768,
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._dimension = dimension
        self._client: Any = None
        self._collection: Any = None

    async def initialize(self) -> None:
        """Open the persistent client and create the collection if needed."""
        try:
            self._client = chromadb.PersistentClient(
                path=self._persist_directory,
                settings=chromadb.config.Settings(anonymized_telemetry=False),
            )
            try:
                self._collection = self._client.get_or_create_collection(
                    name=self._collection_name,
                    metadata={"hnsw:space": "cosine"},
                    embedding_function=_NoopEmbeddingFunction(),
                )
            except ValueError:
                # Collection persisted with a different embedding function.
                self._collection = self._client.get_or_create_collection(
                    name=self._collection_name,
                    metadata={"hnsw:space": "cosine"},
                )
        except Exception as exc:
            raise StoreUnavailableError(
                message=f"Cannot open ChromaDB at {self._persist_directory}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "chromadb_collection_ready",
            path=self._persist_directory,
            collection=self._collection_name,
            items=self._collection.count(),
        )

    # ------------------------------------------------------------------
    # IEmbeddingStore implementation
    # ------------------------------------------------------------------

    async def write(self, records: Sequence[EmbeddingRecord]) -> WriteResult:
        """Add *records*; existing ids are duplicates, not overwrites."""
        if not records:
            return WriteResult()
        collection = self._require_collection()

        ids = [self._item_id(r) for r in records]
        try:
            existing = set(collection.get(ids=list(dict.fromkeys(ids)), include=[])["ids"])
        except Exception as exc:
            raise StoreUnavailableError(
                message=f"ChromaDB lookup failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        written = 0
        duplicates = 0
        failures: list[WriteFailure] = []
        seen: set[str] = set()
        add_errors = 0

        for record, item_id in zip(records, ids):
            if item_id in existing or item_id in seen:
                duplicates += 1
                continue
            if len(record.embedding) != self._dimension:
                failures.append(
                    self._failure(
                        record,
                        f"embedding has {len(record.embedding)} dimensions, "
                        f"expected {self._dimension}",
                    )
                )
                continue
            try:
                collection.add(
                    ids=[item_id],
                    embeddings=[record.embedding],
                    documents=[record.body],
                    metadatas=[self._record_to_metadata(record)],
                )
            except Exception as exc:
                add_errors += 1
                failures.append(self._failure(record, str(exc)))
                continue
            seen.add(item_id)
            written += 1

        logger.info(
            "chromadb_embeddings_written",
            written=written,
            duplicates=duplicates,
            failed=len(failures),
        )
        if add_errors == len(records):
            raise StoreUnavailableError(
                message=(
                    f"ChromaDB rejected all {len(records)} records: "
                    f"{failures[0].reason}"
                ),
                provider_name=self.get_provider_name(),
            )
        return WriteResult(written=written, duplicates=duplicates, failures=failures)

    async def get_all(self) -> list[StoredEmbedding]:
        """Return every stored item ordered by insertion time, then chunk index."""
        collection = self._require_collection()
        stored: list[StoredEmbedding] = []
        offset = 0
        while True:
            page = collection.get(
                include=["embeddings", "documents", "metadatas"],
                limit=_PAGE_SIZE,
                offset=offset,
            )
            page_ids = page["ids"]
            if not page_ids:
                break
            for item_id, document, embedding, meta in zip(
                page_ids, page["documents"], page["embeddings"], page["metadatas"]
            ):
                stored.append(self._item_to_stored(item_id, document, embedding, meta))
            offset += len(page_ids)

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        stored.sort(key=lambda s: (s.created_at or epoch, s.message_id, s.chunk_index))
        return stored

    async def count(self) -> int:
        return self._require_collection().count()

    async def get_stats(self) -> StoreStats:
        records = await self.get_all()
        by_direction: dict[str, int] = {}
        for record in records:
            by_direction[record.direction] = by_direction.get(record.direction, 0) + 1
        return StoreStats(
            total_records=len(records),
            total_messages=len({r.message_id for r in records}),
            total_tokens=sum(r.tokens for r in records),
            records_by_direction=by_direction,
        )

    def get_provider_name(self) -> str:
        return "chromadb_embeddings"

    def is_available(self) -> bool:
        return self._collection is not None

    # ------------------------------------------------------------------
    # Mapping helpers
    # ------------------------------------------------------------------

    def _require_collection(self) -> Any:
        if self._collection is None:
            raise StoreUnavailableError(
                message="ChromaDB store used before initialize()",
                provider_name=self.get_provider_name(),
            )
        return self._collection

    @staticmethod
    def _item_id(record: EmbeddingRecord) -> str:
        return f"{record.message_id}:{record.chunk_index}"

    @staticmethod
    def _record_to_metadata(record: EmbeddingRecord) -> dict[str, str | int]:
        meta: dict[str, str | int] = {
            "message_id": record.message_id,
            "chunk_index": record.chunk_index,
            "direction": record.direction,
            "tokens": record.tokens,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        if record.receiver is not None:
            meta["contact"] = record.receiver
        if record.sender is not None:
            meta["sender"] = record.sender
        if record.group_name is not None:
            meta["group_name"] = record.group_name
        if record.attachments is not None:
            meta["attachments"] = json.dumps(record.attachments)
        return meta

    @staticmethod
    def _item_to_stored(
        item_id: str,
        document: str | None,
        embedding: Any,
        meta: dict[str, Any] | None,
    ) -> StoredEmbedding:
        meta = meta or {}
        attachments = meta.get("attachments")
        return StoredEmbedding(
            id=item_id,
            message_id=str(meta.get("message_id", item_id.rsplit(":", 1)[0])),
            chunk_index=int(meta.get("chunk_index", 0)),
            body=document or "",
            direction=str(meta.get("direction", "")),
            receiver=meta.get("contact"),
            sender=meta.get("sender"),
            group_name=meta.get("group_name"),
            attachments=json.loads(attachments) if attachments else None,
            tokens=int(meta.get("tokens", 0)),
            embedding=[float(v) for v in embedding],
            created_at=meta.get("created_at"),
        )

    @staticmethod
    def _failure(record: EmbeddingRecord, reason: str) -> WriteFailure:
        logger.warning(
            "embedding_write_failed",
            message_id=record.message_id,
            chunk_index=record.chunk_index,
            reason=reason,
        )
        return WriteFailure(
            message_id=record.message_id,
            chunk_index=record.chunk_index,
            reason=reason,
        )
