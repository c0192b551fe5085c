"""Tests for the MigrationManager."""

from __future__ import annotations

from unittest.mock import patch

from kanbanflow.backend.database import Database
from kanbanflow.backend.migration import MIGRATIONS, MigrationManager


async def test_all_migrations_applied_on_initialize(db: Database):
    manager = MigrationManager(db)
    assert await manager.get_current_version() == len(MIGRATIONS)
    rows = await db.execute_fetchall("SELECT version, name FROM schema_migrations ORDER BY version")
    assert [r["name"] for r in rows] == [name for _, name, _ in MIGRATIONS]


async def test_apply_pending_only_runs_new_migrations(db: Database):
    manager = MigrationManager(db)
    current = await manager.get_current_version()
    extended = list(MIGRATIONS) + [
        (current + 1, "create_probe", "CREATE TABLE probe (id TEXT PRIMARY KEY);"),
    ]

    with patch("kanbanflow.backend.migration.MIGRATIONS", extended):
        assert await manager.apply_pending() == ["create_probe"]
        assert await manager.apply_pending() == []

    assert await manager.get_current_version() == current + 1
    assert await db.execute_fetchall("SELECT * FROM probe") == []


async def test_reinitialize_file_database_is_idempotent(tmp_path):
    path = str(tmp_path / "kanban.db")
    first = Database(path, pool_size=1)
    await first.initialize()
    await first.close()

    second = Database(path, pool_size=1)
    await second.initialize()
    try:
        rows = await second.execute_fetchall("SELECT version FROM schema_migrations")
        assert len(rows) == len(MIGRATIONS)
    finally:
        await second.close()
