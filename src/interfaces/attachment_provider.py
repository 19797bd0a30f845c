"""Abstract base class for attachment persistence.

Attachment bytes arrive with a content event and are written out before
the message enters the ingestion pipeline; the pipeline only carries the
returned identifiers as metadata.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.message import AttachmentPayload


# Concrete implementation:
#   LocalAttachmentStore — timestamped files in a local directory
#   (src/providers/attachments/)
class IAttachmentStore(ABC):
    """Contract for saving attachment payloads."""

    @abstractmethod
    async def save(self, payload: AttachmentPayload) -> str | None:
        """Persist *payload* and return its identifier.

        Returns
        -------
        str | None
            The identifier under which the attachment was stored, or
            ``None`` if it could not be written (logged, not raised).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
