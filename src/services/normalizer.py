"""Turn decrypted protocol content into tagged, flat NormalizedMessages.

# ─── HOW NORMALIZATION WORKS ─────────────────────────────────────────
#
# Every decrypted envelope (RawContent) yields exactly one
# NormalizedMessage, even when it carries nothing worth embedding:
#
#   content type            kind            body
#   ─────────────────────   ─────────────   ─────────────────────────────
#   data / edit / sync      TEXT            the body
#     ... with a quote      QUOTE_REPLY     Answer to message "<q>": <b>
#     ... with a reaction   REACTION        Reacted with <e> to message: "<b>"
#     ... with no body      EMPTY           Empty data message
#   null                    DELETED         Null message (for example deleted)
#   call                    CALL            is calling!
#   typing                  TYPING          is typing...
#   receipt                 RECEIPT         got <Type> receipt for messages ...
#   story                   STORY           new story: <story>
#   pni signature           PNI_SIGNATURE   got PNI signature message
#   (no thread)             THREAD_ERROR    failed to derive thread from content
#   (anything unrenderable) FORMAT_ERROR    Something went wrong!
#
# The rendered body is kept for readability; the classifier only ever
# looks at ``kind``.
#
# Direction and parties:
#   - received in a 1:1 thread  -> from, receiver = the contact
#   - received in a group       -> from, sender = the contact, group = title
#   - sent (sync) to a contact  -> to,   receiver = the contact
#   - sent (sync) to a group    -> to,   group = title
# Contacts render as "name,uuid" (or just the uuid when unnamed); groups
# render as their title (or "<missing group>").
# ─────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import uuid
from collections import OrderedDict
from collections.abc import Callable, Mapping

import structlog

from src.models.message import (
    ContentEvent,
    Direction,
    MessageKind,
    NormalizedMessage,
    RawContent,
    RawContentType,
    RawDataMessage,
)
from src.utils.errors import NormalizationError

logger = structlog.get_logger(logger_name=__name__)

MessageLookup = Callable[[str, int], "str | None"]

_HISTORY_LIMIT = 10_000

THREAD_FAILURE_TEXT = "failed to derive thread from content"
FORMAT_FAILURE_TEXT = "Something went wrong!"
EMPTY_DATA_TEXT = "Empty data message"
NULL_MESSAGE_TEXT = "Null message (for example deleted)"
CALL_TEXT = "is calling!"
TYPING_TEXT = "is typing..."
PNI_SIGNATURE_TEXT = "got PNI signature message"
MISSING_GROUP_TEXT = "<missing group>"

_DATA_TYPES = frozenset(
    {
        RawContentType.DATA,
        RawContentType.EDIT,
        RawContentType.SYNC_SENT,
        RawContentType.SYNC_EDIT,
    }
)
_SENT_TYPES = frozenset({RawContentType.SYNC_SENT, RawContentType.SYNC_EDIT})
_EDIT_TYPES = frozenset({RawContentType.EDIT, RawContentType.SYNC_EDIT})


class MessageNormalizer:
    """Renders :class:`RawContent` into :class:`NormalizedMessage` events.

    Parameters
    ----------
    contacts:
        Known contact names keyed by uuid.
    groups:
        Known group titles keyed by group key.
    message_lookup:
        Resolves the body of an earlier message in a thread from its sent
        timestamp, for rendering reactions.  When omitted, bodies of data
        messages this normalizer has already seen are used.
    """

    def __init__(
        self,
        contacts: Mapping[str, str] | None = None,
        groups: Mapping[str, str] | None = None,
        message_lookup: MessageLookup | None = None,
    ) -> None:
        self._contacts = dict(contacts or {})
        self._groups = dict(groups or {})
        self._message_lookup = message_lookup
        self._history: OrderedDict[tuple[str, int], str] = OrderedDict()

    def update_contacts(self, contacts: Mapping[str, str]) -> None:
        """Merge a contacts synchronization into the known names."""
        self._contacts.update(contacts)

    def update_groups(self, groups: Mapping[str, str]) -> None:
        self._groups.update(groups)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def normalize(self, content: RawContent) -> ContentEvent:
        """Normalize one decrypted envelope.

        Returns
        -------
        ContentEvent
            The normalized message plus any attachment payloads that still
            need to be saved.  Attachments are only carried for incoming
            data messages.

        Raises
        ------
        src.utils.errors.NormalizationError
            If the envelope has no sender, so no stable identity can be
            derived for it.
        """
        if not content.sender_uuid.strip():
            raise NormalizationError(
                message=f"{content.content_type.value} content has no sender uuid",
                provider_name="normalizer",
            )
        message_id = self._message_id(content)
        thread = content.contact_uuid or content.group_key
        if thread is None:
            logger.warning(
                "thread_derivation_failed",
                message_id=message_id,
                content_type=content.content_type.value,
            )
            return ContentEvent(
                message=NormalizedMessage(
                    message_id=message_id,
                    kind=MessageKind.THREAD_ERROR,
                    body=THREAD_FAILURE_TEXT,
                    timestamp=content.timestamp,
                )
            )

        rendered = self._render(content, thread)
        if rendered is None:
            return ContentEvent(
                message=NormalizedMessage(
                    message_id=message_id,
                    kind=MessageKind.FORMAT_ERROR,
                    body=FORMAT_FAILURE_TEXT,
                    sender=content.sender_uuid,
                    timestamp=content.timestamp,
                )
            )
        kind, body = rendered

        sent = content.content_type in _SENT_TYPES
        direction = Direction.TO if sent else Direction.FROM
        receiver: str | None = None
        sender: str | None = content.sender_uuid
        group: str | None = None
        if content.contact_uuid is not None:
            receiver = self._format_contact(content.contact_uuid)
        else:
            group = self._format_group(content.group_key or "")
            if not sent:
                sender = self._format_contact(content.sender_uuid)

        payloads = []
        if content.content_type is RawContentType.DATA and content.data_message:
            payloads = list(content.data_message.attachments)

        return ContentEvent(
            message=NormalizedMessage(
                message_id=message_id,
                kind=kind,
                direction=direction,
                body=body,
                sender=sender,
                receiver=receiver,
                group=group,
                timestamp=content.timestamp,
            ),
            attachment_payloads=payloads,
        )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render(self, content: RawContent, thread: str) -> tuple[MessageKind, str] | None:
        ctype = content.content_type

        if ctype in _DATA_TYPES:
            if content.data_message is None:
                logger.warning("data_message_missing", content_type=ctype.value)
                return None
            rendered = self._render_data(content.data_message, thread)
            if rendered is None:
                return None
            kind, body = rendered
            if kind is MessageKind.TEXT:
                if content.timestamp is not None and content.data_message.body:
                    self._remember(thread, content.timestamp, content.data_message.body)
                if ctype in _EDIT_TYPES:
                    kind = MessageKind.EDIT
            return kind, body

        if ctype is RawContentType.NULL:
            return MessageKind.DELETED, NULL_MESSAGE_TEXT
        if ctype is RawContentType.CALL:
            return MessageKind.CALL, CALL_TEXT
        if ctype is RawContentType.TYPING:
            return MessageKind.TYPING, TYPING_TEXT
        if ctype is RawContentType.RECEIPT:
            receipt_type = (content.receipt_type or "delivery").capitalize()
            return (
                MessageKind.RECEIPT,
                f"got {receipt_type} receipt for messages sent at "
                f"{list(content.receipt_timestamps)}",
            )
        if ctype is RawContentType.STORY:
            return MessageKind.STORY, f"new story: {content.story or ''}"
        if ctype is RawContentType.PNI_SIGNATURE:
            return MessageKind.PNI_SIGNATURE, PNI_SIGNATURE_TEXT

        # SYNC_OTHER: sync traffic with nothing to render
        return None

    def _render_data(
        self, data: RawDataMessage, thread: str
    ) -> tuple[MessageKind, str] | None:
        if data.quote_text is not None and data.body is not None:
            return (
                MessageKind.QUOTE_REPLY,
                f'Answer to message "{data.quote_text}": {data.body}',
            )

        if data.reaction_emoji is not None and data.reaction_target_timestamp is not None:
            target = self._lookup(thread, data.reaction_target_timestamp)
            if target is None:
                logger.warning(
                    "reaction_target_missing",
                    thread=thread,
                    sent_at=data.reaction_target_timestamp,
                )
                return None
            return (
                MessageKind.REACTION,
                f'Reacted with {data.reaction_emoji} to message: "{target}"',
            )

        if data.body is not None:
            return MessageKind.TEXT, data.body

        return MessageKind.EMPTY, EMPTY_DATA_TEXT

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _format_contact(self, contact_uuid: str) -> str:
        name = self._contacts.get(contact_uuid)
        if name:
            return f"{name},{contact_uuid}"
        return contact_uuid

    def _format_group(self, group_key: str) -> str:
        return self._groups.get(group_key) or MISSING_GROUP_TEXT

    def _lookup(self, thread: str, sent_at: int) -> str | None:
        if self._message_lookup is not None:
            return self._message_lookup(thread, sent_at)
        return self._history.get((thread, sent_at))

    def _remember(self, thread: str, sent_at: int, body: str) -> None:
        self._history[(thread, sent_at)] = body
        if len(self._history) > _HISTORY_LIMIT:
            self._history.popitem(last=False)

    @staticmethod
    def _message_id(content: RawContent) -> str:
        if content.timestamp is not None:
            return f"{content.sender_uuid}:{content.timestamp}"
        return uuid.uuid4().hex
