"""Unit tests for the Pydantic models, the error hierarchy and small utilities."""

from __future__ import annotations

import asyncio

import pytest
import structlog
from pydantic import TypeAdapter, ValidationError

from src.models.message import (
    CONTENT_KINDS,
    AttachmentPayload,
    ContactsSyncMarker,
    ContentEvent,
    Direction,
    EndOfBacklog,
    MessageKind,
    NormalizedMessage,
    SourceEvent,
)
from src.models.rag import (
    Chunk,
    Classification,
    EmbeddingRecord,
    MessageIngestionResult,
    WriteFailure,
    WriteResult,
)
from src.utils.concurrency import throttled_gather
from src.utils.errors import (
    EmbeddingError,
    EmbeddingProtocolError,
    EmbeddingTransientError,
    SignalVectorError,
    StoreError,
    StoreUnavailableError,
    StoreWriteError,
)
from src.utils.logging import bind_message_context


# ======================================================================
# Message models
# ======================================================================


class TestNormalizedMessage:
    def test_defaults(self) -> None:
        msg = NormalizedMessage(message_id="m1")
        assert msg.kind is MessageKind.TEXT
        assert msg.direction is None
        assert msg.body is None
        assert msg.attachments is None

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            NormalizedMessage(message_id="")

    def test_frozen(self) -> None:
        msg = NormalizedMessage(message_id="m1", body="hi")
        with pytest.raises(ValidationError):
            msg.body = "changed"

    def test_direction_from_string(self) -> None:
        assert NormalizedMessage(message_id="m1", direction="to").direction is Direction.TO

    def test_with_attachments(self) -> None:
        msg = NormalizedMessage(message_id="m1", body="hi")
        assert msg.with_attachments(["a.jpg"]).attachments == ["a.jpg"]
        assert msg.with_attachments([]).attachments is None
        assert msg.attachments is None

    def test_content_kinds(self) -> None:
        assert CONTENT_KINDS == {MessageKind.TEXT, MessageKind.QUOTE_REPLY, MessageKind.EDIT}


class TestSourceEvents:
    @pytest.mark.parametrize(
        ("payload", "expected"),
        [
            ({"type": "end_of_backlog"}, EndOfBacklog),
            ({"type": "contacts"}, ContactsSyncMarker),
            ({"type": "content", "message": {"message_id": "m1"}}, ContentEvent),
        ],
    )
    def test_discriminated_union(self, payload: dict, expected: type) -> None:
        event = TypeAdapter(SourceEvent).validate_python(payload)
        assert isinstance(event, expected)

    def test_content_event_payloads_default_empty(self) -> None:
        event = ContentEvent(message=NormalizedMessage(message_id="m1"))
        assert event.attachment_payloads == []

    def test_attachment_payload_defaults(self) -> None:
        payload = AttachmentPayload()
        assert payload.data == b""
        assert payload.content_type is None


# ======================================================================
# Ingestion models
# ======================================================================


class TestIngestionModels:
    def test_classification_factories(self) -> None:
        assert Classification.content().is_content is True
        noise = Classification.noise("typing_indicator")
        assert noise.is_content is False
        assert noise.reason == "typing_indicator"

    def test_chunk_word_count(self) -> None:
        assert Chunk(index=0, text="one two  three").word_count == 3

    def test_chunk_index_non_negative(self) -> None:
        with pytest.raises(ValidationError):
            Chunk(index=-1, text="x")

    def test_record_natural_key(self) -> None:
        record = EmbeddingRecord(message_id="m1", chunk_index=2, body="x", embedding=[0.0])
        assert record.natural_key == ("m1", 2)
        assert record.direction == ""

    def test_write_result_ok(self) -> None:
        assert WriteResult(written=2).ok is True
        failed = WriteResult(
            failures=[WriteFailure(message_id="m1", chunk_index=0, reason="boom")]
        )
        assert failed.ok is False

    def test_ingestion_result_skipped(self) -> None:
        skipped = MessageIngestionResult(
            message_id="m1", classification=Classification.noise("receipt")
        )
        assert skipped.skipped is True


# ======================================================================
# Errors
# ======================================================================


class TestErrors:
    def test_hierarchy(self) -> None:
        assert issubclass(EmbeddingTransientError, EmbeddingError)
        assert issubclass(EmbeddingProtocolError, EmbeddingError)
        assert issubclass(StoreWriteError, StoreError)
        assert issubclass(StoreUnavailableError, StoreError)
        assert issubclass(StoreError, SignalVectorError)
        assert issubclass(EmbeddingError, SignalVectorError)

    def test_str_includes_provider(self) -> None:
        exc = StoreUnavailableError(message="disk gone", provider_name="sqlite_embeddings")
        assert str(exc) == "[sqlite_embeddings] disk gone"
        assert exc.message == "disk gone"

    def test_str_without_provider(self) -> None:
        assert str(EmbeddingProtocolError(message="bad body")) == "bad body"

    def test_transient_status_code(self) -> None:
        assert EmbeddingTransientError(status_code=502).status_code == 502
        assert EmbeddingTransientError().status_code is None


# ======================================================================
# Utilities
# ======================================================================


class TestThrottledGather:
    @pytest.mark.asyncio
    async def test_results_in_submission_order(self) -> None:
        async def _delayed(value: int, delay: float) -> int:
            await asyncio.sleep(delay)
            return value

        results = await throttled_gather(
            [_delayed(1, 0.03), _delayed(2, 0.0), _delayed(3, 0.01)], limit=3
        )
        assert results == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_limit_caps_in_flight(self) -> None:
        in_flight = 0
        peak = 0

        async def _work() -> None:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.005)
            in_flight -= 1

        await throttled_gather([_work() for _ in range(6)], limit=2)
        assert peak == 2

    @pytest.mark.asyncio
    async def test_exceptions_returned_or_raised(self) -> None:
        async def _fail() -> None:
            raise RuntimeError("boom")

        results = await throttled_gather([_fail()], limit=1)
        assert isinstance(results[0], RuntimeError)

        with pytest.raises(RuntimeError):
            await throttled_gather([_fail()], limit=1, return_exceptions=False)


class TestBindMessageContext:
    def test_message_id_bound_inside_block_only(self) -> None:
        with bind_message_context("m-42"):
            assert structlog.contextvars.get_contextvars()["message_id"] == "m-42"
        assert "message_id" not in structlog.contextvars.get_contextvars()
