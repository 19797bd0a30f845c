"""Unit tests for StreamReceiver — event dispatch, attachments, counters."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.interfaces.attachment_provider import IAttachmentStore
from src.interfaces.message_source import IMessageSource
from src.models.message import (
    AttachmentPayload,
    ContactsSyncMarker,
    ContentEvent,
    EndOfBacklog,
    MessageKind,
    NormalizedMessage,
)
from src.services.receiver import StreamReceiver
from src.utils.errors import StoreUnavailableError
from tests.conftest import MockEmbeddingProvider


class ListSource(IMessageSource):
    """Replays a fixed list of events, then reports exhaustion."""

    def __init__(self, events: Sequence[object]) -> None:
        self._events = list(events)
        self.pulled = 0

    async def next_event(self):
        if self.pulled >= len(self._events):
            return None
        event = self._events[self.pulled]
        self.pulled += 1
        return event


class HeldSource(IMessageSource):
    """Holds every pull until ``release`` is set, then replays *events*."""

    def __init__(self, events: Sequence[object] = ()) -> None:
        self._inner = ListSource(events)
        self.release = asyncio.Event()
        self.pulls_started = 0

    async def next_event(self):
        self.pulls_started += 1
        await self.release.wait()
        return await self._inner.next_event()


class SlowEmbeddingProvider(MockEmbeddingProvider):
    """Takes *delay* seconds per embedding."""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self._delay = delay

    async def embed_single(self, text: str) -> list[float]:
        await asyncio.sleep(self._delay)
        return await super().embed_single(text)


class RecordingAttachmentStore(IAttachmentStore):
    def __init__(self, fail_on: set[bytes] | None = None) -> None:
        self._fail_on = fail_on or set()
        self.saved: list[AttachmentPayload] = []

    async def save(self, payload: AttachmentPayload) -> str | None:
        if payload.data in self._fail_on:
            return None
        self.saved.append(payload)
        return f"file-{len(self.saved)}.bin"

    def get_provider_name(self) -> str:
        return "recording"


def _event(
    message_id: str, body: str = "hello", kind: MessageKind = MessageKind.TEXT, payloads=()
) -> ContentEvent:
    return ContentEvent(
        message=NormalizedMessage(message_id=message_id, kind=kind, body=body),
        attachment_payloads=list(payloads),
    )


@pytest.fixture()
def service(make_service, embedding_provider, memory_store):
    return make_service(embedding_provider, memory_store)


class TestRun:
    @pytest.mark.asyncio
    async def test_processes_content_until_end_of_backlog(self, service, memory_store) -> None:
        source = ListSource(
            [_event("m1", "first"), _event("m2", "second"), EndOfBacklog(), _event("m3")]
        )

        summary = await StreamReceiver(service).run(source)

        assert summary.messages_seen == 2
        assert summary.messages_embedded == 2
        assert summary.records_written == 2
        assert summary.reached_end_of_backlog is True
        assert source.pulled == 3
        assert [r.message_id for r in await memory_store.get_all()] == ["m1", "m2"]

    @pytest.mark.asyncio
    async def test_follow_reads_past_end_of_backlog(self, service) -> None:
        source = ListSource([_event("m1"), EndOfBacklog(), _event("m2")])

        summary = await StreamReceiver(service, follow=True).run(source)

        assert summary.messages_seen == 2
        assert summary.reached_end_of_backlog is True

    @pytest.mark.asyncio
    async def test_stops_when_source_exhausted(self, service) -> None:
        summary = await StreamReceiver(service).run(ListSource([_event("m1")]))

        assert summary.messages_seen == 1
        assert summary.reached_end_of_backlog is False

    @pytest.mark.asyncio
    async def test_noise_and_contacts_are_counted(self, service, memory_store) -> None:
        source = ListSource(
            [
                _event("m1", "is typing...", kind=MessageKind.TYPING),
                ContactsSyncMarker(),
                _event("m2", "real words"),
            ]
        )

        summary = await StreamReceiver(service).run(source)

        assert summary.messages_seen == 2
        assert summary.noise_skipped == 1
        assert summary.messages_embedded == 1
        assert summary.contacts_syncs == 1
        assert await memory_store.count() == 1

    @pytest.mark.asyncio
    async def test_redelivered_message_counts_duplicates(self, service, memory_store) -> None:
        source = ListSource([_event("m1"), _event("m1")])

        summary = await StreamReceiver(service).run(source)

        assert summary.records_written == 1
        assert summary.duplicates == 1
        assert await memory_store.count() == 1

    @pytest.mark.asyncio
    async def test_store_unavailable_stops_the_run(self, service, memory_store) -> None:
        memory_store.unavailable = True
        source = ListSource([_event("m1"), _event("m2")])

        with pytest.raises(StoreUnavailableError):
            await StreamReceiver(service).run(source)
        assert source.pulled == 1


class TestAttachments:
    @pytest.mark.asyncio
    async def test_saved_identifiers_are_attached(self, service, memory_store) -> None:
        store = RecordingAttachmentStore(fail_on={b"bad"})
        payloads = [
            AttachmentPayload(content_type="image/png", data=b"ok1"),
            AttachmentPayload(content_type="image/png", data=b"bad"),
            AttachmentPayload(content_type="image/png", data=b"ok2"),
        ]

        await StreamReceiver(service, attachment_store=store).run(
            ListSource([_event("m1", payloads=payloads)])
        )

        (row,) = await memory_store.get_all()
        assert row.attachments == ["file-1.bin", "file-2.bin"]

    @pytest.mark.asyncio
    async def test_without_store_payloads_are_dropped(self, service, memory_store) -> None:
        payloads = [AttachmentPayload(content_type="image/png", data=b"x")]

        await StreamReceiver(service).run(ListSource([_event("m1", payloads=payloads)]))

        (row,) = await memory_store.get_all()
        assert row.attachments is None

    @pytest.mark.asyncio
    async def test_attachments_saved_before_ingestion(self) -> None:
        order: list[str] = []
        attachment_store = MagicMock(spec=IAttachmentStore)
        attachment_store.save = AsyncMock(side_effect=lambda p: order.append("save") or "a.png")
        ingestion = MagicMock()

        async def _process(message):
            order.append("process")
            assert message.attachments == ["a.png"]
            return MagicMock(
                skipped=False, records_written=1, duplicates=0, chunk_failures=[], write_failures=[]
            )

        ingestion.process = _process
        payload = AttachmentPayload(content_type="image/png", data=b"x")

        await StreamReceiver(ingestion, attachment_store=attachment_store).run(
            ListSource([_event("m1", payloads=[payload])])
        )

        assert order == ["save", "process"]


class TestAwaitContactsSync:
    @pytest.mark.asyncio
    async def test_returns_true_on_marker(self, service, memory_store) -> None:
        source = ListSource([_event("m1"), ContactsSyncMarker(), _event("m2")])

        assert await StreamReceiver(service).await_contacts_sync(source, timeout=1.0) is True
        assert source.pulled == 2
        assert await memory_store.count() == 1

    @pytest.mark.asyncio
    async def test_returns_false_when_source_ends(self, service) -> None:
        source = ListSource([EndOfBacklog()])
        assert await StreamReceiver(service).await_contacts_sync(source, timeout=1.0) is False

    @pytest.mark.asyncio
    async def test_returns_false_on_timeout(self, service, memory_store) -> None:
        receiver = StreamReceiver(service, confirmation_timeout=0.05)
        source = HeldSource([_event("m1"), EndOfBacklog()])

        assert await receiver.await_contacts_sync(source) is False

        source.release.set()
        summary = await receiver.run(source)
        assert source.pulls_started == 2
        assert summary.messages_seen == 1
        assert await memory_store.count() == 1

    @pytest.mark.asyncio
    async def test_timeout_lets_in_flight_message_finish(self, make_service, memory_store) -> None:
        provider = SlowEmbeddingProvider(delay=0.2)
        receiver = StreamReceiver(make_service(provider, memory_store))
        source = ListSource([_event("m1"), ContactsSyncMarker()])

        synced = await receiver.await_contacts_sync(source, timeout=0.05)

        assert synced is False
        assert provider.calls == ["hello"]
        assert [r.message_id for r in await memory_store.get_all()] == ["m1"]
        summary = await receiver.run(source)
        assert summary.messages_seen == 1
        assert summary.contacts_syncs == 1

    @pytest.mark.asyncio
    async def test_activity_during_wait_is_reported_by_run(self, service, memory_store) -> None:
        source = ListSource(
            [_event("m1"), EndOfBacklog(), ContactsSyncMarker(), _event("m2"), _event("m3")]
        )
        receiver = StreamReceiver(service)

        assert await receiver.await_contacts_sync(source, timeout=1.0) is True
        summary = await receiver.run(source)

        assert summary.messages_seen == 1
        assert summary.records_written == 1
        assert summary.contacts_syncs == 1
        assert summary.reached_end_of_backlog is True
        assert source.pulled == 3
        assert [r.message_id for r in await memory_store.get_all()] == ["m1"]

    @pytest.mark.asyncio
    async def test_follow_continues_after_backlog_seen_during_wait(self, service) -> None:
        source = ListSource(
            [_event("m1"), EndOfBacklog(), ContactsSyncMarker(), _event("m2"), _event("m3")]
        )
        receiver = StreamReceiver(service, follow=True)

        await receiver.await_contacts_sync(source, timeout=1.0)
        summary = await receiver.run(source)

        assert summary.messages_seen == 3
        assert summary.records_written == 3
        assert summary.reached_end_of_backlog is True

    @pytest.mark.asyncio
    async def test_counters_reset_between_runs(self, service) -> None:
        receiver = StreamReceiver(service)
        await receiver.await_contacts_sync(
            ListSource([_event("m1"), ContactsSyncMarker()]), timeout=1.0
        )

        first = await receiver.run(ListSource([]))
        second = await receiver.run(ListSource([]))

        assert first.messages_seen == 1
        assert second.messages_seen == 0
