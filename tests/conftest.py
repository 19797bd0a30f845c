"""Shared pytest fixtures for the signal-vector-db test suite."""

from __future__ import annotations

import hashlib
import struct
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path

import pytest
import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_store_provider import IEmbeddingStore
from src.models.message import Direction, MessageKind, NormalizedMessage
from src.models.rag import (
    EmbeddingRecord,
    StoredEmbedding,
    StoreStats,
    WriteFailure,
    WriteResult,
)
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.classifier import MessageClassifier
from src.services.ingestion.ingestion_service import IngestionService
from src.services.ingestion.token_counter import TokenCounter
from src.utils.errors import StoreUnavailableError

_EMBEDDING_DIM = 8


# ---------------------------------------------------------------------------
# Token counting
# ---------------------------------------------------------------------------


class WhitespaceTokenCounter(TokenCounter):
    """One token per whitespace-separated word.

    Deterministic and offline, so chunk sizes in service tests do not
    depend on the byte-pair vocabulary.
    """

    def __init__(self) -> None:
        super().__init__(encoding_name="whitespace")

    def count(self, text: str) -> int:
        return len(text.split())


# ---------------------------------------------------------------------------
# Embedding
# ---------------------------------------------------------------------------


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic fixed-length unit vector by hashing *text*."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = digest
    while len(raw) < dim * 4:
        raw += hashlib.sha256(raw).digest()
    values = struct.unpack(f"<{dim}I", raw[: dim * 4])
    floats = [(v / 0xFFFFFFFF) - 0.5 for v in values]
    magnitude = max(sum(v * v for v in floats) ** 0.5, 1e-10)
    return [v / magnitude for v in floats]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider.

    ``failures`` maps a text to the exceptions raised on its first calls,
    in order; once they are used up the text embeds normally.
    """

    def __init__(
        self,
        dimension: int = _EMBEDDING_DIM,
        failures: dict[str, list[Exception]] | None = None,
    ) -> None:
        self._dimension = dimension
        self._failures = {k: list(v) for k, v in (failures or {}).items()}
        self.calls: list[str] = []

    async def embed_single(self, text: str) -> list[float]:
        self.calls.append(text)
        pending = self._failures.get(text)
        if pending:
            raise pending.pop(0)
        return _hash_to_vector(text, self._dimension)

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class InMemoryEmbeddingStore(IEmbeddingStore):
    """Dict-backed embedding store with the same key and duplicate rules."""

    def __init__(self, dimension: int = _EMBEDDING_DIM) -> None:
        self._dimension = dimension
        self._rows: dict[tuple[str, int], StoredEmbedding] = {}
        self.write_calls: list[list[EmbeddingRecord]] = []
        self.unavailable = False

    async def initialize(self) -> None:
        return None

    async def write(self, records: Sequence[EmbeddingRecord]) -> WriteResult:
        self.write_calls.append(list(records))
        if self.unavailable and records:
            raise StoreUnavailableError(message="store offline", provider_name="memory")
        written = duplicates = 0
        failures: list[WriteFailure] = []
        for record in records:
            if record.natural_key in self._rows:
                duplicates += 1
                continue
            if len(record.embedding) != self._dimension:
                failures.append(
                    WriteFailure(
                        message_id=record.message_id,
                        chunk_index=record.chunk_index,
                        reason="dimension mismatch",
                    )
                )
                continue
            self._rows[record.natural_key] = StoredEmbedding(
                id=len(self._rows) + 1, **record.model_dump()
            )
            written += 1
        return WriteResult(written=written, duplicates=duplicates, failures=failures)

    async def get_all(self) -> list[StoredEmbedding]:
        return list(self._rows.values())

    async def count(self) -> int:
        return len(self._rows)

    async def get_stats(self) -> StoreStats:
        rows = list(self._rows.values())
        return StoreStats(
            total_records=len(rows),
            total_messages=len({r.message_id for r in rows}),
            total_tokens=sum(r.tokens for r in rows),
        )

    def get_provider_name(self) -> str:
        return "memory"

    def is_available(self) -> bool:
        return not self.unavailable


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _uncached_loggers() -> Iterator[None]:
    """Create a fresh PrintLogger per call so capsys stream swaps stay safe."""
    structlog.configure(
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    yield


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def token_counter() -> WhitespaceTokenCounter:
    return WhitespaceTokenCounter()


@pytest.fixture
def embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def memory_store() -> InMemoryEmbeddingStore:
    return InMemoryEmbeddingStore()


@pytest.fixture
def make_service(
    token_counter: WhitespaceTokenCounter,
) -> Callable[..., IngestionService]:
    """Factory building an IngestionService around the given fakes."""

    def _make(
        provider: IEmbeddingProvider,
        store: IEmbeddingStore,
        target_tokens: int = 512,
        max_attempts: int = 3,
        concurrency: int = 1,
    ) -> IngestionService:
        return IngestionService(
            classifier=MessageClassifier(),
            chunker=TextChunker(token_counter=token_counter, target_tokens=target_tokens),
            embedding_provider=provider,
            store=store,
            max_attempts=max_attempts,
            retry_backoff=0.0,
            concurrency=concurrency,
        )

    return _make


@pytest.fixture
def make_message() -> Callable[..., NormalizedMessage]:
    """Factory for NormalizedMessage with sensible defaults."""

    def _make(
        body: str | None = "see you at the station at eight",
        message_id: str = "msg-001",
        kind: MessageKind = MessageKind.TEXT,
        direction: Direction | None = Direction.FROM,
        **kwargs: object,
    ) -> NormalizedMessage:
        return NormalizedMessage(
            message_id=message_id,
            kind=kind,
            direction=direction,
            body=body,
            **kwargs,
        )

    return _make
