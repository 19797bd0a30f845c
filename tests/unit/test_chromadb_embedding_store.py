"""Unit tests for the ChromaDB embedding store adapter.

Tests cover initialize, add-only writes with duplicate counting, dimension
failures, per-item add errors, reads back through the metadata mapping,
stats, and use before initialize.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from src.models.rag import EmbeddingRecord
from src.providers.vector_store.chromadb_embedding_store import ChromaDBEmbeddingStore
from src.utils.errors import StoreUnavailableError

_DIM = 4


def _record(
    message_id: str = "m1",
    chunk_index: int = 0,
    embedding: list[float] | None = None,
    **overrides,
) -> EmbeddingRecord:
    data = {
        "message_id": message_id,
        "chunk_index": chunk_index,
        "body": f"chunk {chunk_index} of {message_id}",
        "direction": "from",
        "receiver": "Alice,1111",
        "sender": "2222",
        "tokens": 4,
        "embedding": embedding if embedding is not None else [0.1, 0.2, 0.3, 0.4],
    }
    data.update(overrides)
    return EmbeddingRecord(**data)


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> ChromaDBEmbeddingStore:
    s = ChromaDBEmbeddingStore(
        persist_directory=str(tmp_path / "chroma"),
        collection_name="test_messages",
        dimension=_DIM,
    )
    await s.initialize()
    return s


class TestLifecycle:
    def test_provider_name(self, tmp_path: Path) -> None:
        s = ChromaDBEmbeddingStore(persist_directory=str(tmp_path / "chroma"))
        assert s.get_provider_name() == "chromadb_embeddings"

    @pytest.mark.asyncio
    async def test_available_only_after_initialize(self, tmp_path: Path) -> None:
        s = ChromaDBEmbeddingStore(persist_directory=str(tmp_path / "chroma"), dimension=_DIM)
        assert s.is_available() is False
        await s.initialize()
        assert s.is_available() is True

    @pytest.mark.asyncio
    async def test_use_before_initialize_raises(self, tmp_path: Path) -> None:
        s = ChromaDBEmbeddingStore(persist_directory=str(tmp_path / "chroma"), dimension=_DIM)
        with pytest.raises(StoreUnavailableError):
            await s.write([_record()])
        with pytest.raises(StoreUnavailableError):
            await s.count()


class TestWrite:
    @pytest.mark.asyncio
    async def test_adds_each_record(self, store: ChromaDBEmbeddingStore) -> None:
        result = await store.write([_record(chunk_index=0), _record(chunk_index=1)])

        assert result.written == 2
        assert result.duplicates == 0
        assert result.ok
        assert await store.count() == 2

    @pytest.mark.asyncio
    async def test_existing_id_is_duplicate_and_untouched(
        self, store: ChromaDBEmbeddingStore
    ) -> None:
        await store.write([_record()])
        result = await store.write([_record(body="rewritten", embedding=[0.9, 0.9, 0.9, 0.9])])

        assert result.written == 0
        assert result.duplicates == 1
        (row,) = await store.get_all()
        assert row.body == "chunk 0 of m1"

    @pytest.mark.asyncio
    async def test_repeat_within_batch_is_duplicate(self, store: ChromaDBEmbeddingStore) -> None:
        result = await store.write([_record(), _record()])
        assert result.written == 1
        assert result.duplicates == 1
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_lookup_uses_unique_ids(self, tmp_path: Path) -> None:
        s = ChromaDBEmbeddingStore(persist_directory=str(tmp_path / "chroma"), dimension=_DIM)
        collection = MagicMock()
        collection.get.return_value = {"ids": []}
        s._collection = collection

        await s.write([_record(), _record(), _record(chunk_index=1)])

        _, kwargs = collection.get.call_args
        assert kwargs["ids"] == ["m1:0", "m1:1"]
        assert collection.add.call_count == 2

    @pytest.mark.asyncio
    async def test_every_add_failing_makes_store_unavailable(self, tmp_path: Path) -> None:
        s = ChromaDBEmbeddingStore(persist_directory=str(tmp_path / "chroma"), dimension=_DIM)
        collection = MagicMock()
        collection.get.return_value = {"ids": []}
        collection.add.side_effect = RuntimeError("readonly database")
        s._collection = collection

        with pytest.raises(StoreUnavailableError, match="readonly"):
            await s.write([_record(chunk_index=0), _record(chunk_index=1)])

    @pytest.mark.asyncio
    async def test_dimension_failures_never_make_store_unavailable(
        self, store: ChromaDBEmbeddingStore
    ) -> None:
        result = await store.write([_record(embedding=[0.1])])

        assert result.written == 0
        assert len(result.failures) == 1

    @pytest.mark.asyncio
    async def test_wrong_dimension_is_a_failure(self, store: ChromaDBEmbeddingStore) -> None:
        result = await store.write(
            [_record(chunk_index=0), _record(chunk_index=1, embedding=[0.1, 0.2])]
        )

        assert result.written == 1
        assert [f.chunk_index for f in result.failures] == [1]
        assert "dimensions" in result.failures[0].reason

    @pytest.mark.asyncio
    async def test_add_error_fails_only_that_record(self, tmp_path: Path) -> None:
        s = ChromaDBEmbeddingStore(persist_directory=str(tmp_path / "chroma"), dimension=_DIM)
        collection = MagicMock()
        collection.get.return_value = {"ids": []}
        collection.add.side_effect = [None, RuntimeError("disk full"), None]
        s._collection = collection

        result = await s.write([_record(chunk_index=i) for i in range(3)])

        assert result.written == 2
        assert len(result.failures) == 1
        assert result.failures[0].chunk_index == 1
        assert result.failures[0].reason == "disk full"

    @pytest.mark.asyncio
    async def test_lookup_error_makes_store_unavailable(self, tmp_path: Path) -> None:
        s = ChromaDBEmbeddingStore(persist_directory=str(tmp_path / "chroma"), dimension=_DIM)
        collection = MagicMock()
        collection.get.side_effect = RuntimeError("database is locked")
        s._collection = collection

        with pytest.raises(StoreUnavailableError, match="locked"):
            await s.write([_record()])
        collection.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_metadata_omits_none_values(self, tmp_path: Path) -> None:
        s = ChromaDBEmbeddingStore(persist_directory=str(tmp_path / "chroma"), dimension=_DIM)
        collection = MagicMock()
        collection.get.return_value = {"ids": []}
        s._collection = collection

        await s.write([_record(receiver=None, sender=None, group_name="Crew")])

        _, kwargs = collection.add.call_args
        assert kwargs["ids"] == ["m1:0"]
        meta = kwargs["metadatas"][0]
        assert "contact" not in meta
        assert "sender" not in meta
        assert "attachments" not in meta
        assert meta["group_name"] == "Crew"
        assert meta["chunk_index"] == 0


class TestReads:
    @pytest.mark.asyncio
    async def test_get_all_maps_metadata_back(self, store: ChromaDBEmbeddingStore) -> None:
        await store.write(
            [
                _record(
                    message_id="g1",
                    direction="to",
                    receiver=None,
                    group_name="Crew",
                    attachments=["2024-05-01-09-30-1714555800-photo.jpg"],
                    tokens=9,
                )
            ]
        )

        (row,) = await store.get_all()
        assert row.id == "g1:0"
        assert row.message_id == "g1"
        assert row.direction == "to"
        assert row.receiver is None
        assert row.sender == "2222"
        assert row.group_name == "Crew"
        assert row.attachments == ["2024-05-01-09-30-1714555800-photo.jpg"]
        assert row.tokens == 9
        assert row.embedding == pytest.approx([0.1, 0.2, 0.3, 0.4])
        assert row.created_at is not None

    @pytest.mark.asyncio
    async def test_get_all_orders_chunks_within_message(
        self, store: ChromaDBEmbeddingStore
    ) -> None:
        await store.write([_record(chunk_index=i) for i in range(3)])

        rows = await store.get_all()
        assert [r.chunk_index for r in rows] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_stats(self, store: ChromaDBEmbeddingStore) -> None:
        await store.write(
            [
                _record("m1", 0, tokens=3),
                _record("m1", 1, tokens=2),
                _record("m2", 0, tokens=5, direction="to"),
            ]
        )

        stats = await store.get_stats()
        assert stats.total_records == 3
        assert stats.total_messages == 2
        assert stats.total_tokens == 10
        assert stats.records_by_direction == {"from": 2, "to": 1}
