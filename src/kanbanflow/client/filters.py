"""Filter a board's tasks by assignee, tags, priority, status and due date."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable

from kanbanflow.analytics import parse_timestamp
from kanbanflow.domain import to_priority_label


def all_tags(tasks: Iterable[dict[str, Any]]) -> list[str]:
    """Every tag used by *tasks*, in order of first appearance."""
    seen: dict[str, None] = {}
    for task in tasks:
        for tag in task.get("tags") or []:
            seen.setdefault(tag, None)
    return list(seen)


@dataclass
class TaskFilter:
    """Active filter criteria; empty criteria match everything.

    Tags match if the task has any of them. The due range is inclusive of
    whole days, and tasks without a due date are never excluded by it.
    """

    assignee: str | None = None
    tags: list[str] = field(default_factory=list)
    priority: str | None = None
    status: str | None = None
    due_from: date | None = None
    due_to: date | None = None

    def add_tag(self, tag: str) -> None:
        tag = tag.strip()
        if tag and tag not in self.tags:
            self.tags.append(tag)

    def remove_tag(self, tag: str) -> None:
        self.tags = [t for t in self.tags if t != tag]

    def clear(self) -> None:
        self.assignee = None
        self.tags = []
        self.priority = None
        self.status = None
        self.due_from = None
        self.due_to = None

    @property
    def active_count(self) -> int:
        active = [self.assignee, self.tags, self.priority, self.status]
        return sum(1 for value in active if value) + (
            1 if self.due_from or self.due_to else 0
        )

    def matches(self, task: dict[str, Any]) -> bool:
        if self.assignee and task.get("assignee_id") != self.assignee:
            return False
        if self.tags and not set(self.tags) & set(task.get("tags") or []):
            return False
        if self.priority and to_priority_label(task.get("priority")) != to_priority_label(self.priority):
            return False
        if self.status and task.get("status") != self.status:
            return False
        due = parse_timestamp(task.get("due_date"))
        if due is not None:
            if self.due_from and due.date() < self.due_from:
                return False
            if self.due_to and due.date() > self.due_to:
                return False
        return True

    def apply(self, tasks: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        return [task for task in tasks if self.matches(task)]
