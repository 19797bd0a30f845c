"""Local-directory attachment store.

Writes attachment bytes into ``attachments_dir`` (default
``attachments/``, created on demand) and returns the stored file name,
which travels with the message as its attachment identifier.

File names are timestamped at save time:

* no sender-supplied name -> ``<timestamp>.<ext>``, extension guessed
  from the MIME type (``bin`` when unknown)
* sender-supplied name    -> ``<timestamp>-<name>``

where ``<timestamp>`` is ``YYYY-MM-DD-HH-MM-<epoch seconds>`` in local
time.  A name already taken in the directory gets a ``-<n>`` suffix
before its extension.
"""

from __future__ import annotations

import asyncio
import mimetypes
from datetime import datetime
from pathlib import Path

import structlog

from src.interfaces.attachment_provider import IAttachmentStore
from src.models.message import AttachmentPayload

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_CONTENT_TYPE = "application/octet-stream"
_FALLBACK_EXTENSION = "bin"


class LocalAttachmentStore(IAttachmentStore):
    """Saves attachments as files in a local directory."""

    def __init__(self, attachments_dir: str | Path = "attachments") -> None:
        self._dir = Path(attachments_dir)

    @property
    def directory(self) -> Path:
        return self._dir

    async def save(self, payload: AttachmentPayload) -> str | None:
        """Write *payload* to disk and return its file name, or ``None`` on failure."""
        file_name = self._unique_name(self.build_file_name(payload))
        path = self._dir / file_name
        try:
            await asyncio.to_thread(self._write_sync, path, payload.data)
        except OSError as exc:
            logger.error(
                "attachment_write_failed",
                file_path=str(path),
                error=str(exc),
            )
            return None

        logger.info("attachment_saved", file_path=str(path), size=len(payload.data))
        return file_name

    def get_provider_name(self) -> str:
        return "local_attachments"

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    @staticmethod
    def build_file_name(payload: AttachmentPayload, now: datetime | None = None) -> str:
        """Return the timestamped file name for *payload*."""
        now = now or datetime.now()
        timestamp = f"{now:%Y-%m-%d-%H-%M}-{int(now.timestamp())}"

        if payload.file_name:
            # Only the final path component; never write outside the directory.
            return f"{timestamp}-{Path(payload.file_name).name}"

        guessed = mimetypes.guess_extension(payload.content_type or _DEFAULT_CONTENT_TYPE)
        extension = guessed.lstrip(".") if guessed else _FALLBACK_EXTENSION
        return f"{timestamp}.{extension}"

    def _unique_name(self, file_name: str) -> str:
        candidate = Path(file_name)
        n = 1
        while (self._dir / candidate.name).exists():
            candidate = Path(f"{Path(file_name).stem}-{n}{Path(file_name).suffix}")
            n += 1
        return candidate.name

    def _write_sync(self, path: Path, data: bytes) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
