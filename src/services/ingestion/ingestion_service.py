"""Coordinator for the per-message ingestion pipeline.

Pipeline stages: **classify -> chunk -> embed -> store**.

The :class:`IngestionService` coordinates four injected collaborators
(classifier, chunker, embedding provider, embedding store) without any of
them knowing about each other.  One call to :meth:`IngestionService.process`
takes one normalized message all the way through:

    1. MessageClassifier -- content or noise; noise stops here
    2. TextChunker -- token-bounded word windows of the body
    3. IEmbeddingProvider -- one vector per chunk, each on its own text
    4. IEmbeddingStore -- one ``write()`` for all of the message's records

Remote failures never abort the message.  A chunk whose embedding keeps
failing is skipped and reported in the result; a record the store rejects
is reported the same way.  Only an unreachable store
(:class:`~src.utils.errors.StoreUnavailableError`) reaches the caller.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

from src.models.message import NormalizedMessage
from src.models.rag import (
    Chunk,
    ChunkFailure,
    EmbeddingRecord,
    MessageIngestionResult,
    WriteResult,
)
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.classifier import MessageClassifier
from src.utils.concurrency import throttled_gather
from src.utils.errors import EmbeddingProtocolError, EmbeddingTransientError
from src.utils.logging import bind_message_context

if TYPE_CHECKING:
    from src.interfaces.embedding_provider import IEmbeddingProvider
    from src.interfaces.vector_store_provider import IEmbeddingStore

logger = structlog.get_logger(logger_name=__name__)


class IngestionService:
    """Runs one message at a time through classify -> chunk -> embed -> store.

    Parameters
    ----------
    classifier:
        Decides whether a message is worth embedding.
    chunker:
        Splits message bodies into token-bounded chunks.
    embedding_provider:
        Generates one embedding vector per chunk.
    store:
        Persists the embedded chunks.
    max_attempts:
        Total embedding attempts per chunk for transient failures.
    retry_backoff:
        Base delay in seconds; attempt *n* waits ``retry_backoff * n``
        before attempt *n + 1*.
    concurrency:
        Maximum in-flight embedding calls for one message's chunks.
        ``1`` embeds strictly in order.
    """

    def __init__(
        self,
        classifier: MessageClassifier,
        chunker: TextChunker,
        embedding_provider: IEmbeddingProvider,
        store: IEmbeddingStore,
        max_attempts: int = 3,
        retry_backoff: float = 1.0,
        concurrency: int = 1,
    ) -> None:
        if max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {max_attempts}"
            raise ValueError(msg)
        self._classifier = classifier
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._store = store
        self._max_attempts = max_attempts
        self._retry_backoff = retry_backoff
        self._concurrency = max(1, concurrency)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process(self, message: NormalizedMessage) -> MessageIngestionResult:
        """Classify, chunk, embed and store one message.

        Returns
        -------
        MessageIngestionResult
            What happened to the message: its classification, how many
            chunks were produced, written and skipped.

        Raises
        ------
        src.utils.errors.StoreUnavailableError
            If the store could not be reached at all.
        """
        with bind_message_context(message.message_id):
            start = time.monotonic()

            classification = self._classifier.classify(message)
            if not classification.is_content:
                logger.debug(
                    "message_skipped",
                    kind=message.kind.value,
                    reason=classification.reason,
                )
                return MessageIngestionResult(
                    message_id=message.message_id,
                    classification=classification,
                    ingestion_time=time.monotonic() - start,
                )

            chunks = list(
                self._chunker.chunk(message.body or "", message_id=message.message_id)
            )
            vectors = await self._embed_chunks(chunks)

            records: list[EmbeddingRecord] = []
            chunk_failures: list[ChunkFailure] = []
            for chunk, outcome in zip(chunks, vectors):
                if isinstance(outcome, ChunkFailure):
                    chunk_failures.append(outcome)
                else:
                    records.append(self._build_record(message, chunk, outcome))

            write_result = await self._store.write(records) if records else WriteResult()

            elapsed = time.monotonic() - start
            logger.info(
                "message_ingested",
                chunks=len(chunks),
                written=write_result.written,
                duplicates=write_result.duplicates,
                skipped_chunks=len(chunk_failures),
                write_failures=len(write_result.failures),
                elapsed_s=round(elapsed, 3),
            )

            return MessageIngestionResult(
                message_id=message.message_id,
                classification=classification,
                chunks_total=len(chunks),
                records_written=write_result.written,
                duplicates=write_result.duplicates,
                total_tokens=sum(r.tokens for r in records),
                chunk_failures=chunk_failures,
                write_failures=write_result.failures,
                ingestion_time=elapsed,
            )

    # ------------------------------------------------------------------
    # Embedding with retry
    # ------------------------------------------------------------------

    async def _embed_chunks(self, chunks: list[Chunk]) -> list[list[float] | ChunkFailure]:
        """Embed every chunk, returning a vector or a failure per chunk in index order."""
        if self._concurrency == 1 or len(chunks) < 2:
            return [await self._embed_chunk(chunk) for chunk in chunks]

        results = await throttled_gather(
            [self._embed_chunk(chunk) for chunk in chunks],
            limit=self._concurrency,
            return_exceptions=False,
        )
        return list(results)

    async def _embed_chunk(self, chunk: Chunk) -> list[float] | ChunkFailure:
        """Embed one chunk, retrying transient failures with linear backoff."""
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await self._embedding_provider.embed_single(chunk.text)
            except EmbeddingProtocolError as exc:
                logger.warning(
                    "chunk_embedding_rejected",
                    chunk_index=chunk.index,
                    attempt=attempt,
                    error=str(exc),
                )
                return ChunkFailure(
                    chunk_index=chunk.index,
                    error_type="protocol",
                    attempts=attempt,
                    reason=exc.message,
                )
            except EmbeddingTransientError as exc:
                if attempt < self._max_attempts:
                    backoff = self._retry_backoff * attempt
                    logger.info(
                        "chunk_embedding_retry",
                        chunk_index=chunk.index,
                        attempt=attempt,
                        backoff_s=backoff,
                        error=str(exc),
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.warning(
                    "chunk_embedding_failed",
                    chunk_index=chunk.index,
                    attempts=attempt,
                    error=str(exc),
                )
                return ChunkFailure(
                    chunk_index=chunk.index,
                    error_type="transient",
                    attempts=attempt,
                    reason=exc.message,
                )

        # unreachable: the loop always returns on its last attempt
        raise AssertionError("embedding retry loop exited without a result")

    @staticmethod
    def _build_record(
        message: NormalizedMessage,
        chunk: Chunk,
        embedding: list[float],
    ) -> EmbeddingRecord:
        return EmbeddingRecord(
            message_id=message.message_id,
            chunk_index=chunk.index,
            body=chunk.text,
            direction=message.direction.value if message.direction else "",
            receiver=message.receiver,
            sender=message.sender,
            group_name=message.group,
            attachments=message.attachments,
            tokens=chunk.tokens,
            embedding=embedding,
        )
