"""SQLite store for deployment history."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterator

from vpsdeploy.config import settings
from vpsdeploy.core.exceptions import HistoryEntryNotFoundError
from vpsdeploy.models.deployment import (
    DeploymentHistoryEntry,
    DeploymentStatus,
    DeploymentType,
    as_utc,
)
from vpsdeploy.utils.logging import get_logger

logger = get_logger("history")

PROJECT_ROOT = Path(__file__).resolve().parents[2]

_UPDATABLE = ("status", "duration", "message")


def _resolve_db_path(db_path: str | Path) -> Path:
    """Resolve database path relative to project root when not absolute."""
    path = Path(db_path)
    return path if path.is_absolute() else PROJECT_ROOT / path


class HistoryStore:
    """Append/update store of deployment attempts. Entries are never deleted."""

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = _resolve_db_path(db_path or settings.history_db_path)
        self._ensure_db_exists()

    def _ensure_db_exists(self) -> None:
        """Create database and tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS deployment_history (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    start_time TEXT NOT NULL,
                    duration INTEGER,
                    message TEXT,
                    seq INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_history_start
                ON deployment_history(start_time DESC, seq DESC)
            """)
            conn.commit()

        logger.debug("history.initialized", db_path=str(self.db_path))

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _row_to_entry(self, row: sqlite3.Row) -> DeploymentHistoryEntry:
        return DeploymentHistoryEntry(
            id=row["id"],
            type=DeploymentType(row["type"]),
            status=DeploymentStatus(row["status"]),
            start_time=datetime.fromisoformat(row["start_time"]),
            duration=row["duration"],
            message=row["message"],
        )

    async def list(self, limit: int | None = None) -> list[DeploymentHistoryEntry]:
        """Entries, most recent first."""
        query = "SELECT * FROM deployment_history ORDER BY start_time DESC, seq DESC"
        params: tuple[Any, ...] = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_entry(row) for row in rows]

    async def get(self, entry_id: str) -> DeploymentHistoryEntry | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM deployment_history WHERE id = ?", (entry_id,)
            ).fetchone()
        return self._row_to_entry(row) if row else None

    async def create(self, entry: DeploymentHistoryEntry) -> DeploymentHistoryEntry:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO deployment_history
                (id, type, status, start_time, duration, message, seq)
                VALUES (?, ?, ?, ?, ?, ?,
                        (SELECT COALESCE(MAX(seq), 0) + 1 FROM deployment_history))
                """,
                (
                    entry.id,
                    entry.type.value,
                    entry.status.value,
                    as_utc(entry.start_time).isoformat(timespec="microseconds"),
                    entry.duration,
                    entry.message,
                ),
            )
            conn.commit()

        logger.info(
            "history.created",
            entry_id=entry.id,
            type=entry.type.value,
            status=entry.status.value,
        )
        return entry

    async def update(self, entry_id: str, changes: dict[str, Any]) -> DeploymentHistoryEntry:
        """Apply a partial update. Raises HistoryEntryNotFoundError on unknown id."""
        fields = {k: v for k, v in changes.items() if k in _UPDATABLE}
        if "status" in fields and isinstance(fields["status"], DeploymentStatus):
            fields["status"] = fields["status"].value

        with self._get_connection() as conn:
            exists = conn.execute(
                "SELECT 1 FROM deployment_history WHERE id = ?", (entry_id,)
            ).fetchone()
            if not exists:
                raise HistoryEntryNotFoundError(entry_id)

            if fields:
                assignments = ", ".join(f"{name} = ?" for name in fields)
                conn.execute(
                    f"UPDATE deployment_history SET {assignments} WHERE id = ?",
                    (*fields.values(), entry_id),
                )
                conn.commit()

        logger.info("history.updated", entry_id=entry_id, fields=sorted(fields))
        entry = await self.get(entry_id)
        assert entry is not None
        return entry


_history_store: HistoryStore | None = None


@lru_cache
def get_history_store() -> HistoryStore:
    """Get the history store singleton."""
    global _history_store
    if _history_store is None:
        _history_store = HistoryStore()
    return _history_store
