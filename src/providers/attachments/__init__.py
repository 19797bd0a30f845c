"""Attachment store implementations."""

from src.providers.attachments.local_attachment_store import LocalAttachmentStore

__all__ = ["LocalAttachmentStore"]
