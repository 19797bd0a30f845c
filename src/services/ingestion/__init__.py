"""Message ingestion pipeline for the embedding store.

Orchestrates the pipeline: **classify -> chunk -> embed -> store**.

Pipeline stages overview:

1. **Classify** (classifier.py / MessageClassifier) -- Separates content
   worth embedding from protocol noise (typing indicators, receipts,
   reactions, ...) by the message's structured kind.

2. **Chunk** (chunker.py / TextChunker) -- Splits long bodies into
   contiguous word windows sized to the embedding model's token budget,
   counted with token_counter.py / TokenCounter.

3. **Embed** (via IEmbeddingProvider) -- One vector per chunk, retried on
   transient failures and skipped when retries run out.

4. **Store** (via IEmbeddingStore) -- Appends one row per embedded chunk,
   idempotent on ``(message_id, chunk_index)``.

The IngestionService class runs all four stages for one message at a time.
"""

from src.services.ingestion.chunker import ChunkSequence, TextChunker
from src.services.ingestion.classifier import MessageClassifier
from src.services.ingestion.ingestion_service import IngestionService
from src.services.ingestion.token_counter import TokenCounter

__all__ = [
    "ChunkSequence",
    "IngestionService",
    "MessageClassifier",
    "TextChunker",
    "TokenCounter",
]
