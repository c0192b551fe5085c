"""Board vocabulary shared by the server and the client: statuses, columns, priorities."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class Priority(StrEnum):
    """Priority codes as stored by the backend."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# Fixed lanes every board is created with, in display order.
DEFAULT_COLUMNS: tuple[dict[str, str], ...] = (
    {"key": TaskStatus.TODO.value, "title": "To Do", "color": "#ef4444"},
    {"key": TaskStatus.IN_PROGRESS.value, "title": "In Progress", "color": "#f59e0b"},
    {"key": TaskStatus.DONE.value, "title": "Done", "color": "#10b981"},
)

VALID_STATUSES = frozenset(s.value for s in TaskStatus)

# Ordering used when listing a board's tasks.
STATUS_ORDER = {s.value: i for i, s in enumerate(TaskStatus)}


def column_config(key: str) -> dict[str, str]:
    """Return the default column definition for *key* (unknown keys map to ``todo``)."""
    for column in DEFAULT_COLUMNS:
        if column["key"] == key:
            return dict(column)
    return dict(DEFAULT_COLUMNS[0])


def to_priority_code(value: str | None) -> str:
    """Map a display label or code to the stored code; unknown values become ``MEDIUM``."""
    if not value:
        return Priority.MEDIUM.value
    try:
        return Priority(value.upper()).value
    except ValueError:
        return Priority.MEDIUM.value


def to_priority_label(value: str | None) -> str:
    """Map a stored code (or an existing label) to the lowercase display label."""
    return to_priority_code(value).lower()


def is_priority(value: str) -> bool:
    return value.upper() in Priority.__members__


def task_for_display(task: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of a task as received from the backend, with display fields derived."""
    shown = dict(task)
    shown["priority"] = to_priority_label(task.get("priority"))
    shown["tags"] = list(task.get("tags") or [])
    shown["comments"] = [dict(c) for c in task.get("comments") or []]
    shown["attachments"] = [dict(a) for a in task.get("attachments") or []]
    assignee = task.get("assignee")
    if assignee:
        shown["assignee"] = user_for_display(assignee)
    return shown


def user_for_display(user: dict[str, Any]) -> dict[str, Any]:
    shown = dict(user)
    shown["avatar"] = user.get("image")
    return shown
