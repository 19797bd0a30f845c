"""Stream receiver: pulls upstream events and feeds them to ingestion.

The receiver is the pipeline's single logical worker.  It asks the
:class:`~src.interfaces.message_source.IMessageSource` for one event at a
time and finishes each content message (attachments saved, then
classify -> chunk -> embed -> store) before pulling the next one, so
messages are stored in arrival order.

Event handling:

* ``ContentEvent``       -- attachments saved, message ingested
* ``ContactsSyncMarker`` -- logged and counted
* ``EndOfBacklog``       -- the backlog is drained; ``run`` stops unless
  the receiver was built with ``follow=True``
* ``None``               -- the source is exhausted; ``run`` stops

A message interrupted mid-write is simply redelivered by the upstream
client; stored rows are keyed by ``(message_id, chunk_index)`` so the
retry does not duplicate them.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING

import structlog

from src.models.message import ContactsSyncMarker, ContentEvent, EndOfBacklog
from src.models.rag import ReceiveSummary

if TYPE_CHECKING:
    from src.interfaces.attachment_provider import IAttachmentStore
    from src.interfaces.message_source import IMessageSource
    from src.services.ingestion.ingestion_service import IngestionService

logger = structlog.get_logger(logger_name=__name__)


@dataclass
class _Counters:
    messages_seen: int = 0
    messages_embedded: int = 0
    noise_skipped: int = 0
    records_written: int = 0
    duplicates: int = 0
    chunk_failures: int = 0
    write_failures: int = 0
    contacts_syncs: int = 0
    reached_end_of_backlog: bool = False

    def to_summary(self) -> ReceiveSummary:
        return ReceiveSummary(**{f.name: getattr(self, f.name) for f in fields(self)})


class StreamReceiver:
    """Consumes a message source and runs each content event through ingestion.

    Parameters
    ----------
    ingestion_service:
        Processes one normalized message per call.
    attachment_store:
        Saves attachment payloads before ingestion.  When omitted,
        payloads are dropped and messages carry no attachment identifiers.
    follow:
        Keep reading past ``EndOfBacklog`` until the source is exhausted.
    confirmation_timeout:
        Default wait, in seconds, for :meth:`await_contacts_sync`.
    """

    def __init__(
        self,
        ingestion_service: IngestionService,
        attachment_store: IAttachmentStore | None = None,
        follow: bool = False,
        confirmation_timeout: float = 60.0,
    ) -> None:
        self._ingestion = ingestion_service
        self._attachments = attachment_store
        self._follow = follow
        self._confirmation_timeout = confirmation_timeout
        # Activity from await_contacts_sync, reported by the next run().
        self._counters = _Counters()
        # A pull that outlived the contacts-sync deadline; its event is
        # handed to the next reader instead of being dropped.
        self._pending_pull: tuple[IMessageSource, asyncio.Task] | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, source: IMessageSource) -> ReceiveSummary:
        """Drain *source*, returning counters for everything processed.

        Messages ingested and markers seen during a preceding
        :meth:`await_contacts_sync` are included in the summary.  If that
        wait already passed the end of the backlog, a non-following
        receiver returns without reading further.

        Raises
        ------
        src.utils.errors.StoreUnavailableError
            If the embedding store becomes unreachable; events after the
            failing one are left in the source.
        """
        counters, self._counters = self._counters, _Counters()
        while not (counters.reached_end_of_backlog and not self._follow):
            event = await self._next_event(source)
            if event is None:
                logger.info("source_exhausted")
                break
            if isinstance(event, EndOfBacklog):
                counters.reached_end_of_backlog = True
                logger.info("backlog_drained", messages_seen=counters.messages_seen)
                continue
            if isinstance(event, ContactsSyncMarker):
                counters.contacts_syncs += 1
                logger.info("contacts_synchronized")
                continue
            await self._handle_content(event, counters)

        summary = counters.to_summary()
        logger.info("receive_finished", **summary.model_dump())
        return summary

    async def await_contacts_sync(
        self,
        source: IMessageSource,
        timeout: float | None = None,
    ) -> bool:
        """Read events until a contacts sync arrives or *timeout* expires.

        Content events read while waiting are ingested as usual and counted
        towards the next :meth:`run`; an ``EndOfBacklog`` is remembered the
        same way.  The deadline only bounds waiting on the source: a
        message already being ingested is always finished.

        Returns
        -------
        bool
            ``True`` once a ``ContactsSyncMarker`` is seen; ``False`` on
            timeout or when the source is exhausted first.
        """
        timeout = self._confirmation_timeout if timeout is None else timeout
        counters = self._counters
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning("contacts_sync_timeout", timeout_s=timeout)
                return False

            pull = self._take_pending_pull(source) or asyncio.ensure_future(
                source.next_event()
            )
            done, _ = await asyncio.wait({pull}, timeout=remaining)
            if not done:
                self._pending_pull = (source, pull)
                logger.warning("contacts_sync_timeout", timeout_s=timeout)
                return False

            event = pull.result()
            if event is None:
                logger.warning(
                    "contacts_sync_missing", messages_seen=counters.messages_seen
                )
                return False
            if isinstance(event, ContactsSyncMarker):
                counters.contacts_syncs += 1
                logger.info("contacts_synchronized", messages_seen=counters.messages_seen)
                return True
            if isinstance(event, EndOfBacklog):
                counters.reached_end_of_backlog = True
                logger.info("backlog_drained", messages_seen=counters.messages_seen)
                continue
            await self._handle_content(event, counters)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _take_pending_pull(self, source: IMessageSource) -> asyncio.Task | None:
        if self._pending_pull is None or self._pending_pull[0] is not source:
            return None
        _, pull = self._pending_pull
        self._pending_pull = None
        return pull

    async def _next_event(self, source: IMessageSource):
        pull = self._take_pending_pull(source)
        if pull is not None:
            return await pull
        return await source.next_event()

    async def _handle_content(self, event: ContentEvent, counters: _Counters) -> None:
        counters.messages_seen += 1
        message = event.message

        if event.attachment_payloads:
            saved: list[str] = []
            if self._attachments is not None:
                for payload in event.attachment_payloads:
                    identifier = await self._attachments.save(payload)
                    if identifier is not None:
                        saved.append(identifier)
            message = message.with_attachments(saved)

        result = await self._ingestion.process(message)

        if result.skipped:
            counters.noise_skipped += 1
            return
        if result.records_written or result.duplicates:
            counters.messages_embedded += 1
        counters.records_written += result.records_written
        counters.duplicates += result.duplicates
        counters.chunk_failures += len(result.chunk_failures)
        counters.write_failures += len(result.write_failures)
