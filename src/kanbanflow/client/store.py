"""Client-side board state: a reducer over typed actions plus a small store around it.

All task mutations go through :func:`reduce`. Patches replace task records
in place, so a list position never changes when a task is moved; column
views sort by ``order`` instead.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class ActionType(StrEnum):
    LOAD_BOARDS = "load_boards"
    LOAD_USERS = "load_users"
    LOAD_TASKS = "load_tasks"
    SELECT_BOARD = "select_board"
    UPSERT_TASK = "upsert_task"
    REMOVE_TASK = "remove_task"
    MOVE_TASK = "move_task"
    ROLLBACK = "rollback"


@dataclass(frozen=True)
class Action:
    type: ActionType
    payload: Any = None


@dataclass(frozen=True)
class TaskPatch:
    """A change to one task record.

    With ``replace=False`` the changed fields are merged into the record;
    with ``replace=True`` *changes* is the complete record to restore.
    """

    task_id: str
    changes: dict[str, Any]
    replace: bool = False

    def apply(self, task: dict[str, Any]) -> dict[str, Any]:
        if self.replace:
            return copy.deepcopy(self.changes)
        return {**task, **copy.deepcopy(self.changes)}


@dataclass
class BoardState:
    boards: list[dict] = field(default_factory=list)
    users: list[dict] = field(default_factory=list)
    tasks: list[dict] = field(default_factory=list)
    active_board_id: str | None = None


def _apply_patches(tasks: list[dict], patches: list[TaskPatch]) -> list[dict]:
    by_id = {patch.task_id: patch for patch in patches}
    result = []
    for task in tasks:
        patch = by_id.get(task["id"])
        result.append(patch.apply(task) if patch is not None else task)
    return result


def reduce(state: BoardState, action: Action) -> BoardState:
    """Return the state that results from applying *action* to *state*."""
    kind = action.type
    payload = action.payload

    if kind == ActionType.LOAD_BOARDS:
        return replace(state, boards=list(payload))
    if kind == ActionType.LOAD_USERS:
        return replace(state, users=list(payload))
    if kind == ActionType.LOAD_TASKS:
        return replace(state, tasks=list(payload))
    if kind == ActionType.SELECT_BOARD:
        return replace(state, active_board_id=payload)
    if kind == ActionType.UPSERT_TASK:
        tasks = list(state.tasks)
        for i, task in enumerate(tasks):
            if task["id"] == payload["id"]:
                tasks[i] = payload
                break
        else:
            tasks.append(payload)
        return replace(state, tasks=tasks)
    if kind == ActionType.REMOVE_TASK:
        return replace(state, tasks=[t for t in state.tasks if t["id"] != payload])
    if kind in (ActionType.MOVE_TASK, ActionType.ROLLBACK):
        return replace(state, tasks=_apply_patches(state.tasks, list(payload)))
    raise ValueError(f"Unknown action type: {kind!r}")


Listener = Callable[[BoardState, Action], None]


class TaskStore:
    """Holds the current :class:`BoardState` and notifies listeners on every dispatch."""

    def __init__(self, state: BoardState | None = None) -> None:
        self._state = state or BoardState()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> BoardState:
        return self._state

    @property
    def tasks(self) -> list[dict]:
        return self._state.tasks

    def dispatch(self, action: Action) -> BoardState:
        self._state = reduce(self._state, action)
        logger.debug("Dispatched %s", action.type)
        for listener in list(self._listeners):
            listener(self._state, action)
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> list[dict]:
        """Deep copy of the task list, for comparison or restore."""
        return copy.deepcopy(self._state.tasks)

    def get_task(self, task_id: str) -> dict | None:
        for task in self._state.tasks:
            if task["id"] == task_id:
                return task
        return None

    @property
    def active_board(self) -> dict | None:
        for board in self._state.boards:
            if board["id"] == self._state.active_board_id:
                return board
        return None

    def board_tasks(self, board_id: str | None = None) -> list[dict]:
        board_id = board_id or self._state.active_board_id
        return [t for t in self._state.tasks if t.get("board_id") == board_id]

    def column_tasks(self, status: str, tasks: list[dict] | None = None) -> list[dict]:
        """Tasks with *status* in display order (``order``, then list position)."""
        source = self._state.tasks if tasks is None else tasks
        return column_sequence(source, status)


def column_sequence(tasks: list[dict], status: str) -> list[dict]:
    indexed = [(i, t) for i, t in enumerate(tasks) if t.get("status") == status]
    indexed.sort(key=lambda pair: (pair[1].get("order") or 0, pair[0]))
    return [t for _, t in indexed]
