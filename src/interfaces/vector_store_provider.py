"""Abstract base class for embedding-store providers.

Defines the contract for persisting :class:`~src.models.rag.EmbeddingRecord`
rows and reading them back.  Implementations may wrap SQLite (local,
default), ChromaDB, or any other vector-capable store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from src.models.rag import EmbeddingRecord, StoredEmbedding, StoreStats, WriteResult


# Concrete implementations (src/providers/vector_store/):
#   SQLiteEmbeddingStore   — append-only relational table, JSON-encoded vectors
#   ChromaDBEmbeddingStore — ChromaDB collection with cosine space
class IEmbeddingStore(ABC):
    """Contract for the append-only embedding store.

    **Idempotency.**  Every record is identified by its natural key
    ``(message_id, chunk_index)``.  Writing a record whose key is already
    stored must not create a second row; it is counted in
    :attr:`WriteResult.duplicates` instead.  This lets the upstream stream
    redeliver events at least once.

    **Partial failure.**  One record failing to insert must not stop the
    remaining records of the batch from being attempted.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create the underlying table / collection if it does not exist."""

    @abstractmethod
    async def write(self, records: Sequence[EmbeddingRecord]) -> WriteResult:
        """Insert *records*, one row each, in the given order.

        Parameters
        ----------
        records:
            Embedded chunks to persist.  Each record's ``embedding`` must
            have the store's configured dimension.

        Returns
        -------
        WriteResult
            Counts of new rows and duplicates, plus one
            :class:`~src.models.rag.WriteFailure` per record that could not
            be inserted.

        Raises
        ------
        src.utils.errors.StoreUnavailableError
            Only when the store could not be reached for any record of a
            non-empty batch.
        """

    @abstractmethod
    async def get_all(self) -> list[StoredEmbedding]:
        """Return every stored row in insertion order."""

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored rows."""

    @abstractmethod
    async def get_stats(self) -> StoreStats:
        """Return aggregate counts over the stored rows."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store backend can be used."""

    async def close(self) -> None:
        """Release store resources (connections, clients)."""
