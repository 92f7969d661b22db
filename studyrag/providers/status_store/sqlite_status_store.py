"""SQLite-backed document status store.

Persists each document's lifecycle status to a local SQLite database at
``data/documents.db``.  Uses ``aiosqlite`` for async I/O.  Only the
status columns live here; everything else about a document is owned by
the surrounding application.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import aiosqlite
import structlog

from studyrag.interfaces.document_status_store import IDocumentStatusStore
from studyrag.models.document import DocumentStatus, DocumentStatusRecord, IngestionStage

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/documents.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS document_status (
    document_id    TEXT PRIMARY KEY,
    workspace_id   TEXT NOT NULL,
    status         TEXT NOT NULL,
    error_stage    TEXT,
    error_message  TEXT,
    created_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    updated_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_document_status_workspace ON document_status(workspace_id);",
    "CREATE INDEX IF NOT EXISTS idx_document_status_status ON document_status(status);",
]

_UPSERT_SQL = """\
INSERT INTO document_status (document_id, workspace_id, status, error_stage, error_message)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(document_id)
DO UPDATE SET status        = excluded.status,
              error_stage   = excluded.error_stage,
              error_message = excluded.error_message,
              updated_at    = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""

_SELECT_SQL = """\
SELECT document_id, workspace_id, status, error_stage, error_message, created_at, updated_at
FROM document_status
WHERE document_id = ?;
"""


class SQLiteDocumentStatusStore(IDocumentStatusStore):
    """SQLite-backed document status persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the status table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("status_db_initialized", path=str(self._db_path))

    async def set_status(
        self,
        document_id: str,
        workspace_id: str,
        status: DocumentStatus,
        error_stage: IngestionStage | None = None,
        error_message: str | None = None,
    ) -> None:
        if status is not DocumentStatus.ERROR:
            error_stage = None
            error_message = None

        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_SQL,
                (
                    document_id,
                    workspace_id,
                    status.value,
                    error_stage.value if error_stage else None,
                    error_message,
                ),
            )
            await db.commit()

    async def get_status(self, document_id: str) -> DocumentStatusRecord | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_SQL, (document_id,))
            row = await cursor.fetchone()

        if row is None:
            return None
        r = dict(row)
        return DocumentStatusRecord(
            document_id=r["document_id"],
            workspace_id=r["workspace_id"],
            status=DocumentStatus(r["status"]),
            error_stage=IngestionStage(r["error_stage"]) if r["error_stage"] else None,
            error_message=r["error_message"],
            created_at=_parse_timestamp(r["created_at"]),
            updated_at=_parse_timestamp(r["updated_at"]),
        )

    async def list_by_status(
        self, status: DocumentStatus, workspace_id: str | None = None
    ) -> list[DocumentStatusRecord]:
        """Return documents currently in *status*, oldest update first.

        ``status --stuck`` uses it to find documents left in ``processing``
        by a crashed process.
        """
        sql = (
            "SELECT document_id, workspace_id, status, error_stage, error_message, "
            "created_at, updated_at FROM document_status WHERE status = ?"
        )
        params: tuple[str, ...] = (status.value,)
        if workspace_id:
            sql += " AND workspace_id = ?"
            params = (status.value, workspace_id)
        sql += " ORDER BY updated_at ASC"

        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()

        return [
            DocumentStatusRecord(
                document_id=r["document_id"],
                workspace_id=r["workspace_id"],
                status=DocumentStatus(r["status"]),
                error_stage=IngestionStage(r["error_stage"]) if r["error_stage"] else None,
                error_message=r["error_message"],
                created_at=_parse_timestamp(r["created_at"]),
                updated_at=_parse_timestamp(r["updated_at"]),
            )
            for r in (dict(row) for row in rows)
        ]

    def get_provider_name(self) -> str:
        return "sqlite_status"


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
