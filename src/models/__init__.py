"""signal-vector-db domain models — re-exports all public model classes.

Other parts of the codebase can import directly from ``src.models``
(e.g. ``from src.models import NormalizedMessage``) instead of from the
individual module files.

The models are organized across two submodules by pipeline stage:
    - message.py — upstream events: raw decrypted content, normalized
      messages, attachment payloads and source events
    - rag.py     — ingestion outputs: chunks, embedding records, store
      write results and per-message / per-stream summaries
"""

from __future__ import annotations

from src.models.message import (
    CONTENT_KINDS,
    AttachmentPayload,
    ContactsSyncMarker,
    ContentEvent,
    Direction,
    EndOfBacklog,
    MessageKind,
    NormalizedMessage,
    RawContent,
    RawContentType,
    RawDataMessage,
    SourceEvent,
)
from src.models.rag import (
    Chunk,
    ChunkFailure,
    Classification,
    EmbeddingRecord,
    MessageIngestionResult,
    ReceiveSummary,
    StoredEmbedding,
    StoreStats,
    WriteFailure,
    WriteResult,
)

__all__ = [
    "AttachmentPayload",
    "CONTENT_KINDS",
    "Chunk",
    "ChunkFailure",
    "Classification",
    "ContactsSyncMarker",
    "ContentEvent",
    "Direction",
    "EmbeddingRecord",
    "EndOfBacklog",
    "MessageIngestionResult",
    "MessageKind",
    "NormalizedMessage",
    "RawContent",
    "RawContentType",
    "RawDataMessage",
    "ReceiveSummary",
    "SourceEvent",
    "StoreStats",
    "StoredEmbedding",
    "WriteFailure",
    "WriteResult",
]
