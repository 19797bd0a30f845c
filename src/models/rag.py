"""Ingestion data models for the message embedding store.

Defines Pydantic v2 models for chunks, embedding records, store write
results and per-message ingestion results.  All models are frozen.

Flow of one message through the pipeline:

    NormalizedMessage
        -> Classification          (content or noise + reason)
        -> Chunk, Chunk, ...       (token-bounded windows of the body)
        -> EmbeddingRecord, ...    (one per successfully embedded chunk)
        -> WriteResult             (rows written / duplicates / failures)
        -> MessageIngestionResult  (everything above, summarized)

Records are keyed by ``(message_id, chunk_index)``; stores treat a second
write of the same key as a duplicate, never as a new row.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------
class Classification(BaseModel):
    """Outcome of classifying a message: content to embed, or noise to skip."""

    model_config = ConfigDict(frozen=True)

    is_content: bool
    reason: str | None = Field(default=None, description="Why the message is noise.")

    @classmethod
    def content(cls) -> Classification:
        return cls(is_content=True)

    @classmethod
    def noise(cls, reason: str) -> Classification:
        return cls(is_content=False, reason=reason)


# ---------------------------------------------------------------------------
# Chunk — a token-bounded window of one message body.
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A contiguous window of a message body's words.

    For a message split into N chunks, indices run 0..N-1 in text order and
    the chunks' words, concatenated, are the body's words.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str = Field(default="", description="Identity of the parent message.")
    index: int = Field(ge=0, description="Zero-based position within the message.")
    text: str = Field(description="The chunk's text.")
    tokens: int = Field(default=0, ge=0, description="Token count of this chunk's text.")

    @property
    def word_count(self) -> int:
        return len(self.text.split())


# ---------------------------------------------------------------------------
# EmbeddingRecord — the persisted unit.
# ---------------------------------------------------------------------------
class EmbeddingRecord(BaseModel):
    """One embedded chunk plus the metadata of the message it came from.

    Written once, never updated.  ``body`` is the chunk's own text and
    ``tokens`` the chunk's own token count.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str
    chunk_index: int = Field(ge=0)
    body: str
    direction: str = Field(default="", description='"to", "from", or "" when unknown.')
    receiver: str | None = None
    sender: str | None = None
    group_name: str | None = None
    attachments: list[str] | None = None
    tokens: int = Field(default=0, ge=0)
    embedding: list[float]

    @property
    def natural_key(self) -> tuple[str, int]:
        return (self.message_id, self.chunk_index)


class StoredEmbedding(EmbeddingRecord):
    """An :class:`EmbeddingRecord` as read back from a store."""

    id: int | str
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Store write results
# ---------------------------------------------------------------------------
class WriteFailure(BaseModel):
    """A record the store could not insert, and why."""

    model_config = ConfigDict(frozen=True)

    message_id: str
    chunk_index: int
    reason: str


class WriteResult(BaseModel):
    """Aggregate outcome of one ``write()`` batch."""

    model_config = ConfigDict(frozen=True)

    written: int = Field(default=0, ge=0, description="New rows inserted.")
    duplicates: int = Field(
        default=0, ge=0, description="Records whose natural key was already stored."
    )
    failures: list[WriteFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class StoreStats(BaseModel):
    """Snapshot of what the store holds."""

    model_config = ConfigDict(frozen=True)

    total_records: int = Field(default=0, ge=0)
    total_messages: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    records_by_direction: dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Per-message and per-stream results
# ---------------------------------------------------------------------------
class ChunkFailure(BaseModel):
    """A chunk that was skipped because it could not be embedded."""

    model_config = ConfigDict(frozen=True)

    chunk_index: int
    error_type: Literal["transient", "protocol"]
    attempts: int = Field(ge=1)
    reason: str


class MessageIngestionResult(BaseModel):
    """Summary of one ``IngestionService.process()`` call."""

    model_config = ConfigDict(frozen=True)

    message_id: str
    classification: Classification
    chunks_total: int = Field(default=0, ge=0)
    records_written: int = Field(default=0, ge=0)
    duplicates: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    chunk_failures: list[ChunkFailure] = Field(default_factory=list)
    write_failures: list[WriteFailure] = Field(default_factory=list)
    ingestion_time: float = Field(default=0.0, ge=0.0)

    @property
    def skipped(self) -> bool:
        return not self.classification.is_content


class ReceiveSummary(BaseModel):
    """Counters for one pass of the stream receiver over the upstream source."""

    model_config = ConfigDict(frozen=True)

    messages_seen: int = 0
    messages_embedded: int = 0
    noise_skipped: int = 0
    records_written: int = 0
    duplicates: int = 0
    chunk_failures: int = 0
    write_failures: int = 0
    contacts_syncs: int = 0
    reached_end_of_backlog: bool = False
