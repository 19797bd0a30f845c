"""Content vs. noise classification for normalized messages.

Decides from the :class:`~src.models.message.MessageKind` tag alone whether
a message is worth embedding.  The rendered body text is only inspected
for emptiness, never pattern-matched against rendered noise strings.
"""

from __future__ import annotations

from src.models.message import CONTENT_KINDS, MessageKind, NormalizedMessage
from src.models.rag import Classification

# Reason reported for each noise kind.
_NOISE_REASONS: dict[MessageKind, str] = {
    MessageKind.EMPTY: "empty_body",
    MessageKind.TYPING: "typing_indicator",
    MessageKind.CALL: "call_signal",
    MessageKind.RECEIPT: "receipt",
    MessageKind.REACTION: "reaction",
    MessageKind.STORY: "story_update",
    MessageKind.DELETED: "deleted_message",
    MessageKind.PNI_SIGNATURE: "pni_signature",
    MessageKind.THREAD_ERROR: "thread_resolution_failure",
    MessageKind.FORMAT_ERROR: "formatting_failure",
}


class MessageClassifier:
    """Maps every message to exactly one of content / noise(reason)."""

    def classify(self, message: NormalizedMessage) -> Classification:
        if message.kind not in CONTENT_KINDS:
            return Classification.noise(_NOISE_REASONS.get(message.kind, message.kind.value))
        if message.body is None or not message.body.strip():
            return Classification.noise("empty_body")
        return Classification.content()
