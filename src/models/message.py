"""Upstream message models: what the messaging client hands to the pipeline.

Two layers live here:

* **Raw content** (:class:`RawContent`) -- the already-decrypted envelope as
  the messaging client exposes it: which kind of protocol message arrived,
  which thread it belongs to, and the data-message fields (body, quote,
  reaction, attachments).  Only :mod:`src.services.normalizer` reads it.

* **Normalized messages** (:class:`NormalizedMessage`) -- one flat,
  immutable record per event, tagged with a :class:`MessageKind`.  The
  classifier decides content vs. noise from that tag alone, never from the
  rendered body text.

Source events wrap normalized messages for the pull-based stream consumed
by :class:`~src.services.receiver.StreamReceiver`.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class Direction(str, Enum):
    """Whether the message was sent by us (``to``) or received (``from``)."""

    TO = "to"
    FROM = "from"


class MessageKind(str, Enum):
    """Structured tag set by the normalizer for every message.

    Only ``TEXT``, ``QUOTE_REPLY`` and ``EDIT`` carry user content; every
    other kind is protocol or system chatter.
    """

    TEXT = "text"
    QUOTE_REPLY = "quote_reply"
    EDIT = "edit"
    REACTION = "reaction"
    EMPTY = "empty"
    DELETED = "deleted"
    CALL = "call"
    TYPING = "typing"
    RECEIPT = "receipt"
    STORY = "story"
    PNI_SIGNATURE = "pni_signature"
    THREAD_ERROR = "thread_error"
    FORMAT_ERROR = "format_error"


CONTENT_KINDS: frozenset[MessageKind] = frozenset(
    {MessageKind.TEXT, MessageKind.QUOTE_REPLY, MessageKind.EDIT}
)


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------
class AttachmentPayload(BaseModel):
    """Downloaded attachment bytes plus the sender-declared file metadata."""

    model_config = ConfigDict(frozen=True)

    content_type: str | None = Field(default=None, description="Declared MIME type.")
    file_name: str | None = Field(default=None, description="Sender-supplied file name.")
    data: bytes = Field(default=b"", description="Raw attachment bytes.")


# ---------------------------------------------------------------------------
# NormalizedMessage — the pipeline's input unit.
# ---------------------------------------------------------------------------
class NormalizedMessage(BaseModel):
    """A single normalized communication event.

    ``message_id`` is the stable identity of the upstream event; together
    with a chunk index it forms the natural key under which embeddings
    are stored, so redelivering the same event never duplicates rows.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str = Field(min_length=1, description="Stable identity of the upstream event.")
    kind: MessageKind = Field(default=MessageKind.TEXT, description="Structured message-kind tag.")
    direction: Direction | None = Field(
        default=None, description="to = sent by us, from = received."
    )
    body: str | None = Field(default=None, description="Rendered message body.")
    sender: str | None = Field(default=None, description="Sender identifier.")
    receiver: str | None = Field(default=None, description="Receiver (contact) identifier.")
    group: str | None = Field(default=None, description="Group title for group threads.")
    attachments: list[str] | None = Field(
        default=None, description="Identifiers of attachments already saved to disk."
    )
    timestamp: int | None = Field(default=None, description="Sent timestamp, ms since epoch.")

    def with_attachments(self, attachments: list[str]) -> NormalizedMessage:
        """Return a copy carrying *attachments* (``None`` when the list is empty)."""
        return self.model_copy(update={"attachments": attachments or None})


# ---------------------------------------------------------------------------
# Raw decrypted content — input to the normalizer.
# ---------------------------------------------------------------------------
class RawContentType(str, Enum):
    """Top-level body type of a decrypted protocol message."""

    DATA = "data"
    NULL = "null"
    EDIT = "edit"
    SYNC_SENT = "sync_sent"
    SYNC_EDIT = "sync_edit"
    SYNC_OTHER = "sync_other"
    CALL = "call"
    TYPING = "typing"
    RECEIPT = "receipt"
    STORY = "story"
    PNI_SIGNATURE = "pni_signature"


class RawDataMessage(BaseModel):
    """The user-visible part of a data, edit or sync-sent message."""

    model_config = ConfigDict(frozen=True)

    body: str | None = None
    quote_text: str | None = None
    reaction_emoji: str | None = None
    reaction_target_timestamp: int | None = None
    attachments: list[AttachmentPayload] = Field(default_factory=list)


class RawContent(BaseModel):
    """A decrypted envelope as delivered by the messaging client.

    Exactly one of ``contact_uuid`` / ``group_key`` identifies the thread;
    when neither is present the thread cannot be derived.
    """

    model_config = ConfigDict(frozen=True)

    content_type: RawContentType
    sender_uuid: str
    timestamp: int | None = None
    contact_uuid: str | None = None
    group_key: str | None = None
    data_message: RawDataMessage | None = None
    receipt_type: str | None = None
    receipt_timestamps: list[int] = Field(default_factory=list)
    story: str | None = None


# ---------------------------------------------------------------------------
# Source events — the pull-based upstream stream.
# ---------------------------------------------------------------------------
class EndOfBacklog(BaseModel):
    """The upstream queue has been drained."""

    model_config = ConfigDict(frozen=True)

    type: Literal["end_of_backlog"] = "end_of_backlog"


class ContactsSyncMarker(BaseModel):
    """The upstream client finished a contacts synchronization."""

    model_config = ConfigDict(frozen=True)

    type: Literal["contacts"] = "contacts"


class ContentEvent(BaseModel):
    """A normalized message, plus attachment bytes still to be saved."""

    model_config = ConfigDict(frozen=True)

    type: Literal["content"] = "content"
    message: NormalizedMessage
    attachment_payloads: list[AttachmentPayload] = Field(default_factory=list)


SourceEvent = Annotated[
    Union[EndOfBacklog, ContactsSyncMarker, ContentEvent],
    Field(discriminator="type"),
]
