"""SQLite database layer with async access via aiosqlite."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id            TEXT PRIMARY KEY,
    name          TEXT NOT NULL,
    email         TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    image         TEXT,
    created_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    token_hash  TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at  TEXT NOT NULL,
    expires_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS boards (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL,
    description  TEXT,
    owner_id     TEXT NOT NULL REFERENCES users(id),
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS board_members (
    board_id    TEXT NOT NULL REFERENCES boards(id) ON DELETE CASCADE,
    user_id     TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    role        TEXT NOT NULL DEFAULT 'member',
    created_at  TEXT NOT NULL,
    PRIMARY KEY (board_id, user_id)
);

CREATE TABLE IF NOT EXISTS board_columns (
    id          TEXT PRIMARY KEY,
    board_id    TEXT NOT NULL REFERENCES boards(id) ON DELETE CASCADE,
    column_key  TEXT NOT NULL,
    title       TEXT NOT NULL,
    color       TEXT NOT NULL,
    position    INTEGER NOT NULL,
    created_at  TEXT NOT NULL,
    UNIQUE (board_id, column_key)
);

CREATE TABLE IF NOT EXISTS tasks (
    id           TEXT PRIMARY KEY,
    board_id     TEXT NOT NULL REFERENCES boards(id) ON DELETE CASCADE,
    column_id    TEXT NOT NULL REFERENCES board_columns(id),
    title        TEXT NOT NULL,
    description  TEXT,
    status       TEXT NOT NULL DEFAULT 'todo',
    priority     TEXT NOT NULL DEFAULT 'MEDIUM',
    assignee_id  TEXT REFERENCES users(id) ON DELETE SET NULL,
    due_date     TEXT,
    tags         TEXT NOT NULL DEFAULT '[]',
    position     INTEGER NOT NULL DEFAULT 0,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    CHECK (status IN ('todo', 'in_progress', 'done')),
    CHECK (priority IN ('LOW', 'MEDIUM', 'HIGH'))
);

CREATE TABLE IF NOT EXISTS comments (
    id          TEXT PRIMARY KEY,
    task_id     TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    author_id   TEXT NOT NULL REFERENCES users(id),
    content     TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS id_sequences (
    prefix   TEXT PRIMARY KEY,
    next_val INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at TEXT NOT NULL
);
"""

_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_tasks_board_status
    ON tasks(board_id, status, position);

CREATE INDEX IF NOT EXISTS idx_comments_task
    ON comments(task_id, created_at);

CREATE INDEX IF NOT EXISTS idx_members_user
    ON board_members(user_id);

CREATE INDEX IF NOT EXISTS idx_sessions_user
    ON sessions(user_id);
"""


def _utcnow() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class Database:
    """Async SQLite database wrapper using aiosqlite with connection pooling.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Use ``":memory:"`` for tests.
    pool_size:
        Number of extra read connections kept in the pool (default 5).
        Writes always go through the primary connection (``self._conn``).
    """

    def __init__(self, db_path: str, pool_size: int = 5) -> None:
        self.db_path = db_path
        self.pool_size = pool_size
        self._conn: aiosqlite.Connection | None = None
        self._pool: asyncio.Queue[aiosqlite.Connection] | None = None
        self._tx_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _create_connection(self) -> aiosqlite.Connection:
        """Create and configure a single aiosqlite connection."""
        # Autocommit mode: explicit BEGIN only inside transaction().
        conn = await aiosqlite.connect(self.db_path, isolation_level=None)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA busy_timeout = 5000")
        await conn.execute("PRAGMA foreign_keys=ON")
        return conn

    async def initialize(self) -> None:
        """Open the connection pool, create the schema and apply migrations."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = await self._create_connection()
        await self._conn.executescript(_SCHEMA_SQL)
        await self._conn.executescript(_INDEX_SQL)
        await self._conn.commit()

        from kanbanflow.backend.migration import MigrationManager
        migrator = MigrationManager(self)
        applied = await migrator.apply_pending()
        if applied:
            logger.info("Applied migrations: %s", applied)

        self._pool = asyncio.Queue(maxsize=self.pool_size)
        if self.db_path != ":memory:":
            for _ in range(self.pool_size):
                conn = await self._create_connection()
                await self._pool.put(conn)
            logger.debug("Connection pool initialized with %d connections", self.pool_size)
        else:
            self._pool = None

    async def close(self) -> None:
        """Close all connections including the pool."""
        if self._pool is not None:
            while not self._pool.empty():
                try:
                    conn = self._pool.get_nowait()
                    await conn.close()
                except asyncio.QueueEmpty:
                    break
            self._pool = None
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._conn

    # ------------------------------------------------------------------
    # Connection pool management
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def acquire(self):
        """Acquire a read connection from the pool.

        Usage::

            async with db.acquire() as conn:
                cursor = await conn.execute("SELECT ...")

        Pooled connections only ever see committed data. In-memory
        databases have no pool and read through the primary connection.
        """
        if self._pool is not None:
            conn = await self._pool.get()
            try:
                yield conn
            finally:
                await self._pool.put(conn)
        else:
            yield self._require_conn()

    # ------------------------------------------------------------------
    # Transaction support
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self):
        """Async context manager for multi-statement transactions.

        Holds the write lock for the whole transaction, so no other write
        can commit on the shared connection halfway through it. Use the
        yielded connection for every statement inside the block; the
        write helpers below would wait on the lock.
        """
        conn = self._require_conn()
        async with self._tx_lock:
            await conn.execute("BEGIN")
            try:
                yield conn
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise

    async def executescript(self, sql: str) -> None:
        """Execute a multi-statement SQL script and commit."""
        conn = self._require_conn()
        async with self._tx_lock:
            await conn.executescript(sql)
            await conn.commit()

    # ------------------------------------------------------------------
    # ID generation
    # ------------------------------------------------------------------

    async def register_prefix(self, prefix: str) -> None:
        """Ensure a prefix row exists in id_sequences (idempotent)."""
        await self.execute(
            "INSERT OR IGNORE INTO id_sequences (prefix, next_val) VALUES (?, 1)",
            (prefix,),
        )

    async def generate_id(self, prefix: str) -> str:
        """Atomically increment the sequence for *prefix* and return an ID.

        The returned ID has the form ``"TSK-001"``.

        Raises
        ------
        ValueError
            If the prefix has not been registered.
        """
        conn = self._require_conn()
        async with self._tx_lock:
            cursor = await conn.execute(
                "UPDATE id_sequences SET next_val = next_val + 1 "
                "WHERE prefix = ? RETURNING next_val - 1 AS val",
                (prefix,),
            )
            row = await cursor.fetchone()
            await conn.commit()
        if row is None:
            raise ValueError(f"Unregistered prefix: {prefix!r}")
        val: int = row[0]
        return f"{prefix}-{val:03d}"

    # ------------------------------------------------------------------
    # Generic query helpers
    # ------------------------------------------------------------------

    async def execute_fetchall(
        self, sql: str, params: tuple = ()
    ) -> list[dict]:
        """Execute a query and return all rows as dicts."""
        async with self.acquire() as conn:
            async with conn.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
                if not rows:
                    return []
                keys = [desc[0] for desc in cursor.description]
        return [dict(zip(keys, row)) for row in rows]

    async def execute_fetchone(
        self, sql: str, params: tuple = ()
    ) -> dict | None:
        """Execute a query and return the first row as a dict, or None."""
        async with self.acquire() as conn:
            async with conn.execute(sql, params) as cursor:
                row = await cursor.fetchone()
                if row is None:
                    return None
                keys = [desc[0] for desc in cursor.description]
        return dict(zip(keys, row))

    async def execute(self, sql: str, params: tuple = ()) -> None:
        """Execute a statement and commit."""
        conn = self._require_conn()
        async with self._tx_lock:
            await conn.execute(sql, params)
            await conn.commit()

    async def execute_returning(self, sql: str, params: tuple = ()) -> list[dict]:
        """Execute a mutating query with RETURNING clause, commit, and return rows as dicts."""
        conn = self._require_conn()
        async with self._tx_lock:
            cursor = await conn.execute(sql, params)
            rows = await cursor.fetchall()
            keys = [desc[0] for desc in cursor.description] if rows else []
            await conn.commit()
        return [dict(zip(keys, row)) for row in rows]
