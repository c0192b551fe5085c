"""Numbered schema migrations applied on top of the base schema."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


# (version, name, sql). Append new migrations at the end; never edit applied ones.
MIGRATIONS: list[tuple[int, str, str]] = [
    (1, "add_task_attachments", """
        CREATE TABLE IF NOT EXISTS attachments (
            id          TEXT PRIMARY KEY,
            task_id     TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            uploader_id TEXT NOT NULL REFERENCES users(id),
            name        TEXT NOT NULL,
            url         TEXT NOT NULL,
            type        TEXT NOT NULL,
            size        INTEGER NOT NULL DEFAULT 0,
            created_at  TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_attachments_task ON attachments(task_id);
    """),
    (2, "add_session_expiry_index", """
        CREATE INDEX IF NOT EXISTS idx_sessions_expires ON sessions(expires_at);
    """),
]


class MigrationManager:
    """Apply pending entries of :data:`MIGRATIONS` and record them in ``schema_migrations``."""

    def __init__(self, db) -> None:
        self._db = db

    async def get_current_version(self) -> int:
        row = await self._db.execute_fetchone(
            "SELECT MAX(version) AS version FROM schema_migrations"
        )
        return row["version"] if row and row["version"] else 0

    async def apply_pending(self) -> list[str]:
        """Apply every migration newer than the current version; return their names."""
        current = await self.get_current_version()
        applied: list[str] = []

        for version, name, sql in MIGRATIONS:
            if version <= current:
                continue
            logger.info("Applying migration %d: %s", version, name)
            await self._db.executescript(sql)
            await self._db.execute(
                "INSERT INTO schema_migrations (version, name, applied_at) VALUES (?, ?, ?)",
                (version, name, datetime.now(timezone.utc).isoformat()),
            )
            applied.append(name)

        return applied
