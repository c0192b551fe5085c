"""Task board: users, boards, columns, tasks, comments and attachments."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from typing import Any

from kanbanflow.backend import event_bus as events
from kanbanflow.backend.database import Database
from kanbanflow.backend.event_bus import EventBus
from kanbanflow.domain import (
    DEFAULT_COLUMNS,
    STATUS_ORDER,
    VALID_STATUSES,
    is_priority,
    to_priority_code,
)

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


# Sequence prefixes for every generated identifier.
ID_PREFIXES = {
    "user": "USR",
    "board": "BRD",
    "column": "COL",
    "task": "TSK",
    "comment": "CMT",
    "attachment": "ATT",
}

_USER_FIELDS = "id, name, email, image"

_UPDATABLE_FIELDS = frozenset({
    "title", "description", "status", "priority", "assignee_id",
    "due_date", "tags", "order", "column_id",
})

_STATUS_SORT_SQL = "CASE t.status " + " ".join(
    f"WHEN '{status}' THEN {rank}" for status, rank in STATUS_ORDER.items()
) + " END"


def _normalize_due_date(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc).isoformat()
    try:
        return datetime.fromisoformat(str(value)).isoformat()
    except ValueError:
        raise ValueError(f"Invalid due date: {value!r}") from None


def _normalize_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str) or not all(isinstance(t, str) for t in value):
        raise ValueError("Tags must be a list of strings")
    return list(value)


def _validate_order(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"Order must be a non-negative integer, got {value!r}")
    return value


class TaskBoard:
    """High-level CRUD interface over the kanban tables.

    Every read or write of board content is checked against board access:
    the caller must own the board or be one of its members. Inaccessible
    rows are reported as missing.

    Parameters
    ----------
    db:
        An initialised :class:`Database` instance.
    event_bus:
        Optional bus notified after every successful mutation.
    """

    def __init__(self, db: Database, event_bus: EventBus | None = None) -> None:
        self._db = db
        self._event_bus = event_bus

    async def register_prefixes(self) -> None:
        for prefix in ID_PREFIXES.values():
            await self._db.register_prefix(prefix)

    async def _emit(self, event_type: str, data: dict) -> None:
        if self._event_bus is not None:
            await self._event_bus.emit(event_type, data)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def create_user(
        self,
        name: str,
        email: str,
        password_hash: str,
        image: str | None = None,
    ) -> dict:
        """Insert a user; raises ``ValueError`` if the email is taken."""
        email = email.strip().lower()
        if not name.strip():
            raise ValueError("Name must not be empty")
        if await self.get_user_by_email(email) is not None:
            raise ValueError(f"Email already registered: {email}")
        user_id = await self._db.generate_id(ID_PREFIXES["user"])
        await self._db.execute(
            "INSERT INTO users (id, name, email, password_hash, image, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (user_id, name.strip(), email, password_hash, image, _utcnow()),
        )
        logger.info("Created user %s", user_id)
        return {"id": user_id, "name": name.strip(), "email": email, "image": image}

    async def get_user(self, user_id: str) -> dict | None:
        return await self._db.execute_fetchone(
            f"SELECT {_USER_FIELDS} FROM users WHERE id = ?", (user_id,)
        )

    async def get_user_by_email(self, email: str) -> dict | None:
        """Return the full user row (including ``password_hash``) for *email*."""
        return await self._db.execute_fetchone(
            "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
        )

    async def list_users(self) -> list[dict]:
        return await self._db.execute_fetchall(
            f"SELECT {_USER_FIELDS} FROM users ORDER BY name"
        )

    # ------------------------------------------------------------------
    # Boards
    # ------------------------------------------------------------------

    async def create_board(
        self,
        owner_id: str,
        name: str,
        description: str | None = None,
    ) -> dict:
        """Create a board with the three default columns."""
        if not name or not name.strip():
            raise ValueError("Board name must not be empty")
        board_id = await self._db.generate_id(ID_PREFIXES["board"])
        column_ids = [
            await self._db.generate_id(ID_PREFIXES["column"]) for _ in DEFAULT_COLUMNS
        ]
        now = _utcnow()
        async with self._db.transaction() as conn:
            await conn.execute(
                "INSERT INTO boards (id, name, description, owner_id, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (board_id, name.strip(), description, owner_id, now, now),
            )
            await conn.execute(
                "INSERT INTO board_members (board_id, user_id, role, created_at) "
                "VALUES (?, ?, 'owner', ?)",
                (board_id, owner_id, now),
            )
            for position, (column_id, column) in enumerate(zip(column_ids, DEFAULT_COLUMNS)):
                await conn.execute(
                    "INSERT INTO board_columns "
                    "(id, board_id, column_key, title, color, position, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (column_id, board_id, column["key"], column["title"],
                     column["color"], position, now),
                )
        board = await self.get_board(board_id, owner_id)
        await self._emit(events.BOARD_CREATED, {"board_id": board_id, "owner_id": owner_id})
        return board

    async def _require_board_access(self, board_id: str, user_id: str) -> dict:
        row = await self._db.execute_fetchone(
            "SELECT b.* FROM boards b "
            "WHERE b.id = ? AND (b.owner_id = ? OR EXISTS ("
            "  SELECT 1 FROM board_members m WHERE m.board_id = b.id AND m.user_id = ?))",
            (board_id, user_id, user_id),
        )
        if row is None:
            raise LookupError(f"Board not found: {board_id}")
        return row

    async def can_access(self, board_id: str, user_id: str) -> bool:
        """True if *user_id* owns or is a member of *board_id*."""
        try:
            await self._require_board_access(board_id, user_id)
        except LookupError:
            return False
        return True

    async def get_columns(self, board_id: str) -> list[dict]:
        return await self._db.execute_fetchall(
            "SELECT id, board_id, column_key AS key, title, color, position AS \"order\" "
            "FROM board_columns WHERE board_id = ? ORDER BY position",
            (board_id,),
        )

    async def _hydrate_board(self, board: dict) -> dict:
        board["columns"] = await self.get_columns(board["id"])
        board["members"] = await self._db.execute_fetchall(
            "SELECT u.id, u.name, u.email, u.image, m.role FROM board_members m "
            "JOIN users u ON u.id = m.user_id WHERE m.board_id = ? ORDER BY m.created_at",
            (board["id"],),
        )
        return board

    async def get_board(self, board_id: str, user_id: str) -> dict:
        board = await self._require_board_access(board_id, user_id)
        return await self._hydrate_board(board)

    async def list_boards(self, user_id: str) -> list[dict]:
        """Boards *user_id* owns or is a member of, newest first."""
        rows = await self._db.execute_fetchall(
            "SELECT DISTINCT b.* FROM boards b "
            "LEFT JOIN board_members m ON m.board_id = b.id "
            "WHERE b.owner_id = ? OR m.user_id = ? "
            "ORDER BY b.created_at DESC, b.id DESC",
            (user_id, user_id),
        )
        return [await self._hydrate_board(row) for row in rows]

    async def add_member(self, board_id: str, owner_id: str, user_id: str) -> dict:
        """Add *user_id* to the board; only the owner may do this."""
        board = await self._require_board_access(board_id, owner_id)
        if board["owner_id"] != owner_id:
            raise PermissionError("Only the board owner can add members")
        if await self.get_user(user_id) is None:
            raise LookupError(f"User not found: {user_id}")
        await self._db.execute(
            "INSERT OR IGNORE INTO board_members (board_id, user_id, role, created_at) "
            "VALUES (?, ?, 'member', ?)",
            (board_id, user_id, _utcnow()),
        )
        return await self._hydrate_board(board)

    async def _resolve_column(
        self,
        board_id: str,
        status: str | None = None,
        column_id: str | None = None,
    ) -> dict:
        """Return the column a task belongs in, keeping status and column consistent.

        An explicit *column_id* wins and must belong to the board; its key
        must agree with *status* when both are given. With only a status the
        column is looked up by key; with neither the first column is used.
        """
        columns = await self.get_columns(board_id)
        if not columns:
            raise ValueError(f"Board has no columns: {board_id}")
        if status is not None and status not in VALID_STATUSES:
            raise ValueError(f"Invalid status: {status!r}")
        if column_id is not None:
            for column in columns:
                if column["id"] == column_id:
                    if status is not None and status != column["key"]:
                        raise ValueError(
                            f"Status {status!r} does not match column {column_id} "
                            f"({column['key']!r})"
                        )
                    return column
            raise ValueError(f"Column {column_id} does not belong to board {board_id}")
        if status is not None:
            for column in columns:
                if column["key"] == status:
                    return column
            raise ValueError(f"Board {board_id} has no column for status {status!r}")
        return columns[0]

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _hydrate_tasks(self, rows: list[dict]) -> list[dict]:
        """Turn task rows into wire records with assignee, comments and attachments."""
        if not rows:
            return []
        task_ids = [row["id"] for row in rows]
        marks = ", ".join("?" for _ in task_ids)

        assignee_ids = sorted({row["assignee_id"] for row in rows if row["assignee_id"]})
        users: dict[str, dict] = {}
        if assignee_ids:
            user_marks = ", ".join("?" for _ in assignee_ids)
            for user in await self._db.execute_fetchall(
                f"SELECT {_USER_FIELDS} FROM users WHERE id IN ({user_marks})",
                tuple(assignee_ids),
            ):
                users[user["id"]] = user

        comments: dict[str, list[dict]] = {task_id: [] for task_id in task_ids}
        for comment in await self._db.execute_fetchall(
            "SELECT c.id, c.task_id, c.author_id, c.content, c.created_at, "
            "u.name AS author_name, u.email AS author_email, u.image AS author_image "
            f"FROM comments c JOIN users u ON u.id = c.author_id "
            f"WHERE c.task_id IN ({marks}) ORDER BY c.created_at, c.id",
            tuple(task_ids),
        ):
            comments[comment["task_id"]].append(self._comment_record(comment))

        attachments: dict[str, list[dict]] = {task_id: [] for task_id in task_ids}
        for attachment in await self._db.execute_fetchall(
            f"SELECT * FROM attachments WHERE task_id IN ({marks}) ORDER BY created_at, id",
            tuple(task_ids),
        ):
            attachments[attachment["task_id"]].append(attachment)

        tasks = []
        for row in rows:
            task = dict(row)
            task["order"] = task.pop("position")
            task["tags"] = json.loads(task["tags"] or "[]")
            task["assignee"] = users.get(task["assignee_id"]) if task["assignee_id"] else None
            task["comments"] = comments[task["id"]]
            task["attachments"] = attachments[task["id"]]
            tasks.append(task)
        return tasks

    @staticmethod
    def _comment_record(row: dict) -> dict:
        return {
            "id": row["id"],
            "task_id": row["task_id"],
            "author_id": row["author_id"],
            "content": row["content"],
            "created_at": row["created_at"],
            "author": {
                "id": row["author_id"],
                "name": row["author_name"],
                "email": row["author_email"],
                "image": row["author_image"],
            },
        }

    async def _require_task(self, task_id: str, user_id: str) -> dict:
        row = await self._db.execute_fetchone(
            "SELECT * FROM tasks WHERE id = ?", (task_id,)
        )
        if row is None:
            raise LookupError(f"Task not found: {task_id}")
        try:
            await self._require_board_access(row["board_id"], user_id)
        except LookupError:
            raise LookupError(f"Task not found: {task_id}") from None
        return row

    async def _require_assignee(self, assignee_id: str | None) -> None:
        if assignee_id is not None and await self.get_user(assignee_id) is None:
            raise ValueError(f"Unknown assignee: {assignee_id}")

    async def _next_position(self, column_id: str) -> int:
        row = await self._db.execute_fetchone(
            "SELECT MAX(position) AS top FROM tasks WHERE column_id = ?", (column_id,)
        )
        return 0 if row is None or row["top"] is None else row["top"] + 1

    async def create_task(
        self,
        board_id: str,
        user_id: str,
        title: str,
        description: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        column_id: str | None = None,
        assignee_id: str | None = None,
        due_date: Any = None,
        tags: list[str] | None = None,
        order: int | None = None,
    ) -> dict:
        """Create a task in the given column (the board's first column by default).

        When *order* is omitted the task is appended to the end of its column.
        """
        await self._require_board_access(board_id, user_id)
        if not title or not title.strip():
            raise ValueError("Task title must not be empty")
        if priority is not None and not is_priority(priority):
            raise ValueError(f"Invalid priority: {priority!r}")
        column = await self._resolve_column(board_id, status=status, column_id=column_id)
        await self._require_assignee(assignee_id)
        tag_list = _normalize_tags(tags)
        due = _normalize_due_date(due_date)
        position = (
            _validate_order(order) if order is not None
            else await self._next_position(column["id"])
        )

        task_id = await self._db.generate_id(ID_PREFIXES["task"])
        now = _utcnow()
        await self._db.execute(
            "INSERT INTO tasks (id, board_id, column_id, title, description, status, "
            "priority, assignee_id, due_date, tags, position, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (task_id, board_id, column["id"], title.strip(), description, column["key"],
             to_priority_code(priority), assignee_id, due, json.dumps(tag_list),
             position, now, now),
        )
        task = await self.get_task(task_id, user_id)
        await self._emit(events.TASK_CREATED, {"board_id": board_id, "task_id": task_id})
        return task

    async def get_task(self, task_id: str, user_id: str) -> dict:
        row = await self._require_task(task_id, user_id)
        return (await self._hydrate_tasks([row]))[0]

    async def get_board_tasks(self, board_id: str, user_id: str) -> list[dict]:
        """Tasks of a board ordered by status, then order, then newest first."""
        await self._require_board_access(board_id, user_id)
        rows = await self._db.execute_fetchall(
            f"SELECT t.* FROM tasks t WHERE t.board_id = ? "
            f"ORDER BY {_STATUS_SORT_SQL}, t.position, t.created_at DESC",
            (board_id,),
        )
        return await self._hydrate_tasks(rows)

    async def _prepare_update(self, row: dict, changes: dict[str, Any]) -> dict[str, Any]:
        """Validate *changes* against *row* and return the column values to write."""
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)}")

        values: dict[str, Any] = {}
        if "title" in changes:
            title = changes["title"]
            if not title or not str(title).strip():
                raise ValueError("Task title must not be empty")
            values["title"] = str(title).strip()
        if "description" in changes:
            values["description"] = changes["description"]
        if "priority" in changes:
            priority = changes["priority"]
            if priority is None or not is_priority(priority):
                raise ValueError(f"Invalid priority: {priority!r}")
            values["priority"] = to_priority_code(priority)
        if "assignee_id" in changes:
            await self._require_assignee(changes["assignee_id"])
            values["assignee_id"] = changes["assignee_id"]
        if "due_date" in changes:
            values["due_date"] = _normalize_due_date(changes["due_date"])
        if "tags" in changes:
            values["tags"] = json.dumps(_normalize_tags(changes["tags"]))
        if "order" in changes:
            values["position"] = _validate_order(changes["order"])
        if "status" in changes or "column_id" in changes:
            if changes.get("status") is None and changes.get("column_id") is None:
                raise ValueError("Status and column must not be null")
            column = await self._resolve_column(
                row["board_id"],
                status=changes.get("status"),
                column_id=changes.get("column_id"),
            )
            values["status"] = column["key"]
            values["column_id"] = column["id"]
        return values

    async def update_task(self, task_id: str, user_id: str, **changes: Any) -> dict:
        """Apply a partial update and return the updated task.

        Status and column are kept in sync: changing either re-derives the
        other. Priority accepts a code or a display label and is stored as
        a code.
        """
        row = await self._require_task(task_id, user_id)
        values = await self._prepare_update(row, changes)
        if values:
            values["updated_at"] = _utcnow()
            assignments = ", ".join(f"{name} = ?" for name in values)
            await self._db.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ?",
                (*values.values(), task_id),
            )
        task = await self.get_task(task_id, user_id)
        await self._emit(events.TASK_UPDATED, {
            "board_id": row["board_id"],
            "task_id": task_id,
            "fields": sorted(changes),
        })
        return task

    async def reorder_tasks(
        self,
        board_id: str,
        user_id: str,
        moves: list[dict[str, Any]],
    ) -> list[dict]:
        """Apply a batch of ``{id, order, status?, column_id?}`` moves atomically.

        Every move is validated before anything is written; the writes run
        in one transaction, so either all of them land or none do.
        """
        await self._require_board_access(board_id, user_id)
        if not moves:
            return []

        planned: list[tuple[str, dict[str, Any]]] = []
        seen: set[str] = set()
        for move in moves:
            task_id = move.get("id")
            if not task_id or task_id in seen:
                raise ValueError(f"Invalid or duplicate task id in reorder: {task_id!r}")
            seen.add(task_id)
            row = await self._db.execute_fetchone(
                "SELECT * FROM tasks WHERE id = ? AND board_id = ?", (task_id, board_id)
            )
            if row is None:
                raise LookupError(f"Task not found: {task_id}")
            changes = {k: move[k] for k in ("order", "status", "column_id") if k in move}
            if "order" not in changes:
                raise ValueError(f"Missing order for task {task_id}")
            planned.append((task_id, await self._prepare_update(row, changes)))

        now = _utcnow()
        async with self._db.transaction() as conn:
            for task_id, values in planned:
                values["updated_at"] = now
                assignments = ", ".join(f"{name} = ?" for name in values)
                await conn.execute(
                    f"UPDATE tasks SET {assignments} WHERE id = ?",
                    (*values.values(), task_id),
                )

        logger.info("Reordered %d tasks on board %s", len(planned), board_id)
        ids = [task_id for task_id, _ in planned]
        marks = ", ".join("?" for _ in ids)
        rows = await self._db.execute_fetchall(
            f"SELECT t.* FROM tasks t WHERE t.id IN ({marks}) "
            f"ORDER BY {_STATUS_SORT_SQL}, t.position",
            tuple(ids),
        )
        await self._emit(events.TASKS_REORDERED, {"board_id": board_id, "task_ids": ids})
        return await self._hydrate_tasks(rows)

    async def delete_task(self, task_id: str, user_id: str) -> None:
        row = await self._require_task(task_id, user_id)
        await self._db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        logger.info("Deleted task %s", task_id)
        await self._emit(events.TASK_DELETED, {"board_id": row["board_id"], "task_id": task_id})

    # ------------------------------------------------------------------
    # Comments and attachments
    # ------------------------------------------------------------------

    async def add_comment(self, task_id: str, user_id: str, content: str) -> dict:
        row = await self._require_task(task_id, user_id)
        if not content or not content.strip():
            raise ValueError("Comment must not be empty")
        comment_id = await self._db.generate_id(ID_PREFIXES["comment"])
        await self._db.execute(
            "INSERT INTO comments (id, task_id, author_id, content, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (comment_id, task_id, user_id, content.strip(), _utcnow()),
        )
        comment = next(c for c in await self.list_comments(task_id, user_id) if c["id"] == comment_id)
        await self._emit(events.COMMENT_CREATED, {
            "board_id": row["board_id"],
            "task_id": task_id,
            "comment_id": comment_id,
        })
        return comment

    async def list_comments(self, task_id: str, user_id: str) -> list[dict]:
        await self._require_task(task_id, user_id)
        rows = await self._db.execute_fetchall(
            "SELECT c.id, c.task_id, c.author_id, c.content, c.created_at, "
            "u.name AS author_name, u.email AS author_email, u.image AS author_image "
            "FROM comments c JOIN users u ON u.id = c.author_id "
            "WHERE c.task_id = ? ORDER BY c.created_at, c.id",
            (task_id,),
        )
        return [self._comment_record(row) for row in rows]

    async def add_attachment(
        self,
        task_id: str,
        user_id: str,
        name: str,
        url: str,
        type: str,
        size: int = 0,
    ) -> dict:
        await self._require_task(task_id, user_id)
        if not name or not url:
            raise ValueError("Attachment name and url are required")
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise ValueError(f"Attachment size must be a non-negative integer, got {size!r}")
        attachment_id = await self._db.generate_id(ID_PREFIXES["attachment"])
        rows = await self._db.execute_returning(
            "INSERT INTO attachments (id, task_id, uploader_id, name, url, type, size, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?) RETURNING *",
            (attachment_id, task_id, user_id, name, url, type, size, _utcnow()),
        )
        return rows[0]
