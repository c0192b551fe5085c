"""Work out what a drop does to the board.

The engine is pure: given the dragged task, the drop target and the current
task list it returns a :class:`MoveCommand` (or ``None`` for a no-op) and
never touches the store itself.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any

from kanbanflow.client.columns import ColumnResolver
from kanbanflow.client.store import TaskPatch, column_sequence

logger = logging.getLogger(__name__)


def array_move(items: list, old_index: int, new_index: int) -> list:
    """Return a copy of *items* with the element at *old_index* moved to *new_index*."""
    result = list(items)
    result.insert(new_index, result.pop(old_index))
    return result


@dataclass
class MoveCommand:
    """Forward and inverse patches for one drop.

    ``forward`` is applied optimistically; ``inverse`` holds the pre-drag
    record of every touched task and is applied if persistence fails.
    """

    task_id: str
    board_id: str | None
    new_status: str
    status_changed: bool
    order_changed: bool
    forward: list[TaskPatch] = field(default_factory=list)
    inverse: list[TaskPatch] = field(default_factory=list)

    @property
    def touched_ids(self) -> list[str]:
        return [patch.task_id for patch in self.forward]

    def requests(self) -> list[tuple[str, dict[str, Any]]]:
        """Update requests to persist this move, as ``(task_id, body)`` pairs.

        A reorder persists status and order for every task in the column; a
        plain status change persists only the dragged task's status.
        """
        if self.order_changed:
            return [
                (patch.task_id, {"status": patch.changes["status"],
                                 "order": patch.changes["order"]})
                for patch in self.forward
            ]
        return [(self.task_id, {"status": self.new_status})]

    def moves(self) -> list[dict[str, Any]]:
        """The same change as a batch for the atomic reorder endpoint."""
        return [
            {"id": task_id, **body} for task_id, body in self.requests()
        ]


class ReorderEngine:
    """Compute the new status and order of the tasks affected by a drop."""

    def plan(
        self,
        task_id: str,
        over_id: str | None,
        tasks: list[dict[str, Any]],
        resolver: ColumnResolver,
        origin: dict[str, Any] | None = None,
    ) -> MoveCommand | None:
        """Return the move for dropping *task_id* on *over_id*, or ``None`` if nothing changes.

        *origin* is the dragged task as it was when the drag started; status
        changes are measured against it, because hovering over a column may
        already have relabelled the task in *tasks*.
        """
        dragged = next((t for t in tasks if t["id"] == task_id), None)
        if dragged is None or over_id is None or over_id == task_id:
            return None

        before = copy.deepcopy(origin if origin is not None else dragged)
        origin_status = before["status"]
        new_status = origin_status
        status_changed = False
        order_changed = False
        reordered: list[dict[str, Any]] = []

        column = resolver.resolve(over_id)
        target = None if column is not None else next(
            (t for t in tasks if t["id"] == over_id), None
        )

        if column is not None:
            if column["key"] != origin_status:
                new_status = column["key"]
                status_changed = True
        elif target is not None:
            if target["status"] != origin_status:
                new_status = target["status"]
                status_changed = True

            board_tasks = [t for t in tasks if t.get("board_id") == dragged.get("board_id")]
            column_tasks = column_sequence(board_tasks, new_status)
            ids = [t["id"] for t in column_tasks]
            old_index = ids.index(task_id) if task_id in ids else -1
            new_index = ids.index(over_id) if over_id in ids else -1
            if old_index != -1 and new_index != -1 and old_index != new_index:
                order_changed = True
                reordered = array_move(column_tasks, old_index, new_index)

        if not status_changed and not order_changed:
            return None

        placement = resolver.placement(new_status)
        command = MoveCommand(
            task_id=task_id,
            board_id=dragged.get("board_id"),
            new_status=new_status,
            status_changed=status_changed,
            order_changed=order_changed,
        )
        if order_changed:
            for index, task in enumerate(reordered):
                command.forward.append(TaskPatch(task["id"], {**placement, "order": index}))
                prior = before if task["id"] == task_id else copy.deepcopy(task)
                command.inverse.append(TaskPatch(task["id"], prior, replace=True))
        else:
            command.forward.append(TaskPatch(task_id, placement))
            command.inverse.append(TaskPatch(task_id, before, replace=True))

        logger.debug(
            "Planned move of %s onto %s: status %s -> %s, %d task(s) touched",
            task_id, over_id, origin_status, new_status, len(command.forward),
        )
        return command
