"""Track an in-progress drag and turn the drop into an optimistic move."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any

from kanbanflow.client.columns import ColumnResolver
from kanbanflow.client.reorder import MoveCommand, ReorderEngine
from kanbanflow.client.store import Action, ActionType, TaskPatch, TaskStore

logger = logging.getLogger(__name__)


@dataclass
class DragSession:
    task_id: str
    origin: dict[str, Any]
    over_id: str | None = None


class DragSessionTracker:
    """Records the dragged task and hover target for the store's active board.

    Only hovering over a column changes state (the dragged task is
    relabelled provisionally); hovering over tasks is bookkeeping.
    """

    def __init__(self, store: TaskStore, engine: ReorderEngine | None = None) -> None:
        self._store = store
        self._engine = engine or ReorderEngine()
        self.session: DragSession | None = None

    def _resolver(self) -> ColumnResolver:
        return ColumnResolver.for_board(self._store.active_board)

    def start(self, task_id: str) -> DragSession | None:
        task = self._store.get_task(task_id)
        if task is None:
            self.session = None
            return None
        self.session = DragSession(
            task_id=task_id,
            origin=copy.deepcopy(task),
        )
        return self.session

    def over(self, task_id: str, over_id: str | None) -> bool:
        """Record the hover target; returns ``True`` if the task was relabelled."""
        if self.session is None or self.session.task_id != task_id:
            self.start(task_id)
        if self.session is None or over_id is None:
            return False
        self.session.over_id = over_id

        task = self._store.get_task(task_id)
        resolver = self._resolver()
        column = resolver.resolve(over_id)
        if task is None or column is None or task["status"] == column["key"]:
            return False
        self._store.dispatch(Action(
            ActionType.MOVE_TASK,
            [TaskPatch(task_id, resolver.placement(column["key"]))],
        ))
        return True

    def drop(self, task_id: str, over_id: str | None) -> MoveCommand | None:
        """Finish the drag and apply the resulting move to the store.

        Returns the command to persist, or ``None`` when nothing needs
        saving. Without a drop target the state stays as the last hover
        left it; a drop that changes nothing puts the task back the way
        it was before the drag.
        """
        session = self.session
        if session is None or session.task_id != task_id:
            session = self.start(task_id)
        self.session = None
        if session is None or over_id is None:
            return None

        command = self._engine.plan(
            task_id, over_id, self._store.tasks, self._resolver(), origin=session.origin,
        )
        if command is None:
            if self._store.get_task(task_id) != session.origin:
                self._store.dispatch(Action(
                    ActionType.ROLLBACK, [TaskPatch(task_id, session.origin, replace=True)],
                ))
            return None

        self._store.dispatch(Action(ActionType.MOVE_TASK, command.forward))
        return command
