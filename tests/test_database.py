"""Tests for the Database class."""

from __future__ import annotations

import asyncio
import sqlite3

import pytest

from kanbanflow.backend.database import Database


# ------------------------------------------------------------------
# Schema
# ------------------------------------------------------------------


async def test_initialize_creates_tables(db: Database):
    rows = await db.execute_fetchall(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
    )
    table_names = {r["name"] for r in rows}
    expected = {
        "users",
        "sessions",
        "boards",
        "board_members",
        "board_columns",
        "tasks",
        "comments",
        "attachments",
        "id_sequences",
        "schema_migrations",
    }
    assert expected.issubset(table_names), f"Missing tables: {expected - table_names}"


async def test_foreign_keys_enforced(db: Database):
    with pytest.raises(sqlite3.IntegrityError):
        await db.execute(
            "INSERT INTO boards (id, name, owner_id, created_at, updated_at) "
            "VALUES ('BRD-X', 'x', 'USR-missing', 'now', 'now')"
        )


async def test_file_database_creates_parent_dir(tmp_path):
    path = tmp_path / "nested" / "kanban.db"
    database = Database(str(path), pool_size=2)
    await database.initialize()
    try:
        assert path.exists()
        async with database.acquire() as conn:
            cursor = await conn.execute("SELECT 1")
            assert (await cursor.fetchone())[0] == 1
    finally:
        await database.close()


async def test_uninitialized_database_raises():
    database = Database(":memory:")
    with pytest.raises(RuntimeError, match="not initialized"):
        await database.execute_fetchall("SELECT 1")


# ------------------------------------------------------------------
# ID generation
# ------------------------------------------------------------------


async def test_generate_id(db: Database):
    await db.register_prefix("TSK")
    assert await db.generate_id("TSK") == "TSK-001"
    assert await db.generate_id("TSK") == "TSK-002"


async def test_register_prefix_is_idempotent(db: Database):
    await db.register_prefix("TSK")
    await db.generate_id("TSK")
    await db.register_prefix("TSK")
    assert await db.generate_id("TSK") == "TSK-002"


async def test_generate_id_unregistered(db: Database):
    with pytest.raises(ValueError, match="Unregistered prefix"):
        await db.generate_id("XX")


# ------------------------------------------------------------------
# Transactions
# ------------------------------------------------------------------


async def test_transaction_commits(db: Database):
    async with db.transaction() as conn:
        await conn.execute("INSERT INTO id_sequences (prefix, next_val) VALUES ('A', 1)")
        await conn.execute("INSERT INTO id_sequences (prefix, next_val) VALUES ('B', 1)")
    rows = await db.execute_fetchall("SELECT prefix FROM id_sequences ORDER BY prefix")
    assert [r["prefix"] for r in rows] == ["A", "B"]


async def test_transaction_rolls_back_on_error(db: Database):
    with pytest.raises(RuntimeError):
        async with db.transaction() as conn:
            await conn.execute("INSERT INTO id_sequences (prefix, next_val) VALUES ('A', 1)")
            raise RuntimeError("boom")
    assert await db.execute_fetchall("SELECT * FROM id_sequences") == []


async def test_execute_returning(db: Database):
    rows = await db.execute_returning(
        "INSERT INTO id_sequences (prefix, next_val) VALUES ('Z', 7) RETURNING prefix, next_val"
    )
    assert rows == [{"prefix": "Z", "next_val": 7}]
    assert await db.execute_fetchone("SELECT * FROM id_sequences WHERE prefix = 'nope'") is None


async def test_concurrent_write_waits_for_open_transaction(db: Database):
    await db.execute("INSERT INTO id_sequences (prefix, next_val) VALUES ('A', 1)")
    await db.execute("INSERT INTO id_sequences (prefix, next_val) VALUES ('B', 1)")
    inside = asyncio.Event()

    async def failing_transaction():
        async with db.transaction() as conn:
            await conn.execute("UPDATE id_sequences SET next_val = 99 WHERE prefix = 'A'")
            inside.set()
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

    async def outside_write():
        await inside.wait()
        await db.execute("UPDATE id_sequences SET next_val = 5 WHERE prefix = 'B'")

    results = await asyncio.gather(failing_transaction(), outside_write(), return_exceptions=True)

    assert isinstance(results[0], RuntimeError)
    assert results[1] is None
    rows = await db.execute_fetchall("SELECT prefix, next_val FROM id_sequences ORDER BY prefix")
    # The rolled-back update is gone and the outside write survived
    assert [(r["prefix"], r["next_val"]) for r in rows] == [("A", 1), ("B", 5)]


async def test_pooled_reads_only_see_committed_rows(tmp_path):
    database = Database(str(tmp_path / "kanban.db"), pool_size=1)
    await database.initialize()
    try:
        async with database.transaction() as conn:
            await conn.execute("INSERT INTO id_sequences (prefix, next_val) VALUES ('A', 1)")
            assert await database.execute_fetchone("SELECT * FROM id_sequences") is None
        row = await database.execute_fetchone("SELECT * FROM id_sequences")
        assert row == {"prefix": "A", "next_val": 1}
    finally:
        await database.close()
