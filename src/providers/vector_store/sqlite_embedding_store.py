"""SQLite-backed embedding store.

Persists :class:`~src.models.rag.EmbeddingRecord` rows to a local SQLite
database at ``data/embeddings.db``.  Uses ``aiosqlite`` for async I/O.

Vectors are stored as JSON array text of exactly ``dimension`` floats;
attachments as JSON array text (NULL when the message had none).  The
``contact`` column holds the message's receiver.

The table is append-only.  ``UNIQUE(message_id, chunk_index)`` plus
``ON CONFLICT DO NOTHING`` makes a redelivered chunk a counted duplicate
rather than a second row.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.interfaces.vector_store_provider import IEmbeddingStore
from src.models.rag import (
    EmbeddingRecord,
    StoredEmbedding,
    StoreStats,
    WriteFailure,
    WriteResult,
)
from src.utils.errors import StoreUnavailableError, StoreWriteError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/embeddings.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS embeddings (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id  TEXT    NOT NULL,
    chunk_index INTEGER NOT NULL,
    body        TEXT    NOT NULL,
    direction   TEXT    NOT NULL DEFAULT '',
    contact     TEXT,
    sender      TEXT,
    group_name  TEXT,
    attachments TEXT,
    tokens      INTEGER NOT NULL DEFAULT 0,
    embedding   TEXT    NOT NULL,
    created_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    UNIQUE(message_id, chunk_index)
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_embeddings_message ON embeddings(message_id);",
    "CREATE INDEX IF NOT EXISTS idx_embeddings_direction ON embeddings(direction);",
]

_INSERT_SQL = """\
INSERT INTO embeddings (
    message_id, chunk_index, body, direction, contact, sender,
    group_name, attachments, tokens, embedding
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(message_id, chunk_index) DO NOTHING;
"""

_SELECT_ALL_SQL = """\
SELECT id, message_id, chunk_index, body, direction, contact, sender,
       group_name, attachments, tokens, embedding, created_at
FROM embeddings
ORDER BY id;
"""


class SQLiteEmbeddingStore(IEmbeddingStore):
    """SQLite-backed embedding persistence.

    Parameters
    ----------
    db_path:
        Location of the database file; parent directories are created by
        :meth:`initialize`.
    dimension:
        Required length of every record's ``embedding``.
    """

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        dimension: int = 768,
    ) -> None:
        self._db_path = Path(db_path)
        self._dimension = dimension
        self._initialized = False

    async def initialize(self) -> None:
        """Create the embeddings table and indices if they don't exist."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(_CREATE_TABLE_SQL)
                for idx_sql in _CREATE_INDICES_SQL:
                    await db.execute(idx_sql)
                await db.commit()
        except (OSError, sqlite3.Error) as exc:
            raise StoreUnavailableError(
                message=f"Cannot initialize embedding store at {self._db_path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        self._initialized = True
        logger.info("embedding_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def write(self, records: Sequence[EmbeddingRecord]) -> WriteResult:
        """Insert *records* one at a time, each in its own transaction."""
        if not records:
            return WriteResult()

        written = 0
        duplicates = 0
        failures: list[WriteFailure] = []
        connection_errors = 0

        try:
            db = await aiosqlite.connect(str(self._db_path))
        except (OSError, sqlite3.Error) as exc:
            raise StoreUnavailableError(
                message=f"Cannot open embedding store at {self._db_path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        try:
            for record in records:
                try:
                    inserted = await self._insert_one(db, record)
                except StoreWriteError as exc:
                    failures.append(self._failure(record, exc.message))
                    continue
                except sqlite3.Error as exc:
                    if not isinstance(exc, sqlite3.IntegrityError):
                        connection_errors += 1
                    failures.append(self._failure(record, str(exc)))
                    continue

                if inserted:
                    written += 1
                else:
                    duplicates += 1
                    logger.debug(
                        "embedding_duplicate_skipped",
                        message_id=record.message_id,
                        chunk_index=record.chunk_index,
                    )
        finally:
            await db.close()

        if connection_errors == len(records):
            raise StoreUnavailableError(
                message=(
                    f"Embedding store unusable for all {len(records)} records: "
                    f"{failures[0].reason}"
                ),
                provider_name=self.get_provider_name(),
            )

        logger.info(
            "embeddings_written",
            written=written,
            duplicates=duplicates,
            failed=len(failures),
        )
        return WriteResult(written=written, duplicates=duplicates, failures=failures)

    async def _insert_one(self, db: aiosqlite.Connection, record: EmbeddingRecord) -> bool:
        """Insert one record and commit.  Returns ``False`` on a duplicate key."""
        if len(record.embedding) != self._dimension:
            raise StoreWriteError(
                message=(
                    f"embedding has {len(record.embedding)} dimensions, "
                    f"expected {self._dimension}"
                ),
                provider_name=self.get_provider_name(),
            )

        attachments = (
            json.dumps(record.attachments) if record.attachments is not None else None
        )
        cursor = await db.execute(
            _INSERT_SQL,
            (
                record.message_id,
                record.chunk_index,
                record.body,
                record.direction,
                record.receiver,
                record.sender,
                record.group_name,
                attachments,
                record.tokens,
                json.dumps(record.embedding),
            ),
        )
        await db.commit()
        return cursor.rowcount > 0

    @staticmethod
    def _failure(record: EmbeddingRecord, reason: str) -> WriteFailure:
        logger.warning(
            "embedding_write_failed",
            message_id=record.message_id,
            chunk_index=record.chunk_index,
            reason=reason,
        )
        return WriteFailure(
            message_id=record.message_id,
            chunk_index=record.chunk_index,
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all(self) -> list[StoredEmbedding]:
        """Return every stored row, oldest first."""
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_ALL_SQL)
            rows = await cursor.fetchall()
        return [self._row_to_stored(dict(r)) for r in rows]

    async def count(self) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM embeddings")
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def get_stats(self) -> StoreStats:
        """Return row, message and token totals plus a per-direction breakdown."""
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT COUNT(*), COUNT(DISTINCT message_id), "
                "COALESCE(SUM(tokens), 0) FROM embeddings"
            )
            totals = await cursor.fetchone()
            cursor = await db.execute(
                "SELECT direction, COUNT(*) FROM embeddings GROUP BY direction"
            )
            by_direction = await cursor.fetchall()

        total_records, total_messages, total_tokens = totals or (0, 0, 0)
        return StoreStats(
            total_records=total_records,
            total_messages=total_messages,
            total_tokens=total_tokens,
            records_by_direction={row[0]: row[1] for row in by_direction},
        )

    def get_provider_name(self) -> str:
        return "sqlite_embeddings"

    def is_available(self) -> bool:
        return self._initialized

    @staticmethod
    def _row_to_stored(row: dict[str, Any]) -> StoredEmbedding:
        attachments = json.loads(row["attachments"]) if row["attachments"] else None
        return StoredEmbedding(
            id=row["id"],
            message_id=row["message_id"],
            chunk_index=row["chunk_index"],
            body=row["body"],
            direction=row["direction"],
            receiver=row["contact"],
            sender=row["sender"],
            group_name=row["group_name"],
            attachments=attachments,
            tokens=row["tokens"],
            embedding=json.loads(row["embedding"]),
            created_at=row["created_at"],
        )
