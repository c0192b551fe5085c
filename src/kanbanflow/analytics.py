"""Board analytics computed from a list of task records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

from kanbanflow.domain import Priority, TaskStatus, to_priority_label


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def compute_analytics(
    tasks: Iterable[dict[str, Any]],
    now: datetime | None = None,
) -> dict[str, Any]:
    """Summarise *tasks*.

    Returns total and completed counts, the completion rate as a percentage,
    counts per status and per priority label, and the number of overdue
    tasks (due before *now* and not done). Priorities may be codes or labels.
    """
    now = now or datetime.now(timezone.utc)
    tasks = list(tasks)

    by_status = {status.value: 0 for status in TaskStatus}
    by_priority = {priority.value.lower(): 0 for priority in Priority}
    overdue = 0

    for task in tasks:
        status = task.get("status")
        if status in by_status:
            by_status[status] += 1
        by_priority[to_priority_label(task.get("priority"))] += 1
        due = parse_timestamp(task.get("due_date"))
        if due is not None and due < now and status != TaskStatus.DONE:
            overdue += 1

    total = len(tasks)
    completed = by_status[TaskStatus.DONE.value]
    return {
        "total": total,
        "completed": completed,
        "completion_rate": (completed / total) * 100 if total else 0.0,
        "by_status": by_status,
        "by_priority": by_priority,
        "overdue": overdue,
    }
