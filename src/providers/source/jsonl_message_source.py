"""JSON-lines message source.

Replays a recorded upstream event stream, one JSON object per line:

    {"type": "content", "message": {"message_id": "...", "body": "..."},
     "attachments": [{"content_type": "image/png", "data_base64": "..."}]}
    {"type": "raw", "content": {"content_type": "data", "sender_uuid": "...", ...}}
    {"type": "contacts", "contacts": {"<uuid>": "Alice"}, "groups": {"<key>": "Team"}}
    {"type": "end_of_backlog"}

``content`` lines carry an already-normalized message; ``raw`` lines carry
decrypted envelope content and go through the
:class:`~src.services.normalizer.MessageNormalizer`.  Attachment bytes are
base64 in ``data_base64``.  A ``contacts`` line updates the normalizer's
names before it is reported as a contacts-sync marker.

Blank lines are ignored.  Lines that do not parse are logged and skipped;
they never end the stream.
"""

from __future__ import annotations

import asyncio
import base64
import json
from pathlib import Path
from typing import IO, Any

import structlog

from src.interfaces.message_source import IMessageSource
from src.models.message import (
    AttachmentPayload,
    ContactsSyncMarker,
    ContentEvent,
    EndOfBacklog,
    NormalizedMessage,
    RawContent,
)
from src.services.normalizer import MessageNormalizer
from src.utils.errors import NormalizationError

logger = structlog.get_logger(logger_name=__name__)


class JsonlMessageSource(IMessageSource):
    """Reads source events from a JSON-lines file, in file order.

    Parameters
    ----------
    path:
        The JSON-lines file to replay.
    normalizer:
        Normalizer for ``raw`` lines; a default one is created when omitted.
    """

    def __init__(self, path: str | Path, normalizer: MessageNormalizer | None = None) -> None:
        self._path = Path(path)
        self._normalizer = normalizer or MessageNormalizer()
        self._fh: IO[str] | None = None
        self._line_no = 0
        self._closed = False

    @property
    def lines_read(self) -> int:
        return self._line_no

    async def next_event(self) -> EndOfBacklog | ContactsSyncMarker | ContentEvent | None:
        if self._closed:
            return None
        if self._fh is None:
            self._fh = await asyncio.to_thread(self._path.open, "r", encoding="utf-8")

        while True:
            line = await asyncio.to_thread(self._fh.readline)
            if not line:
                await self.close()
                return None
            self._line_no += 1
            if not line.strip():
                continue

            try:
                return self._parse_line(line)
            except (KeyError, TypeError, ValueError, NormalizationError) as exc:
                logger.warning(
                    "source_line_skipped",
                    path=str(self._path),
                    line=self._line_no,
                    error=str(exc),
                )

    async def close(self) -> None:
        self._closed = True
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def _parse_line(self, line: str) -> EndOfBacklog | ContactsSyncMarker | ContentEvent:
        data = _expect_object(json.loads(line), "event line")

        event_type = data.get("type")
        if event_type == "end_of_backlog":
            return EndOfBacklog()

        if event_type == "contacts":
            contacts = _expect_object(data.get("contacts") or {}, "contacts")
            groups = _expect_object(data.get("groups") or {}, "groups")
            self._normalizer.update_contacts(contacts)
            self._normalizer.update_groups(groups)
            return ContactsSyncMarker()

        if event_type == "content":
            message = NormalizedMessage.model_validate(data["message"])
            payloads = [
                self._decode_attachment(a) for a in _expect_list(data.get("attachments"))
            ]
            return ContentEvent(message=message, attachment_payloads=payloads)

        if event_type == "raw":
            content = self._decode_raw_content(_expect_object(data["content"], "content"))
            return self._normalizer.normalize(RawContent.model_validate(content))

        raise ValueError(f"unknown event type {event_type!r}")

    def _decode_raw_content(self, content: dict[str, Any]) -> dict[str, Any]:
        data_message = content.get("data_message")
        if not data_message:
            return content
        data_message = _expect_object(data_message, "data_message")
        attachments = _expect_list(data_message.get("attachments"))
        if not attachments:
            return content
        return {
            **content,
            "data_message": {
                **data_message,
                "attachments": [self._decode_attachment(a) for a in attachments],
            },
        }

    @staticmethod
    def _decode_attachment(raw: Any) -> AttachmentPayload:
        raw = _expect_object(raw, "attachment")
        return AttachmentPayload(
            content_type=raw.get("content_type"),
            file_name=raw.get("file_name"),
            data=base64.b64decode(raw.get("data_base64", ""), validate=True),
        )


def _expect_object(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{what} is not a JSON object")
    return value


def _expect_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError("attachments is not a JSON array")
    return value
