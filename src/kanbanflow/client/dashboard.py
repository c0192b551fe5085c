"""Board client: wires the store, read model, drag tracking and sync together."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from kanbanflow.analytics import compute_analytics
from kanbanflow.client.api_client import ApiError, KanbanApiClient
from kanbanflow.client.columns import ColumnResolver
from kanbanflow.client.drag import DragSessionTracker
from kanbanflow.client.filters import TaskFilter, all_tags
from kanbanflow.client.notifications import Notifier
from kanbanflow.client.read_model import BoardReadModel
from kanbanflow.client.store import Action, ActionType, TaskStore
from kanbanflow.client.sync import PersistenceSync, SyncResult
from kanbanflow.config_loader import ClientConfig
from kanbanflow.domain import task_for_display

logger = logging.getLogger(__name__)


class DashboardController:
    """Everything a board view needs, without the rendering.

    Every operation that talks to the server catches :class:`ApiError`,
    reports it through the notifier and leaves the store usable.
    """

    def __init__(
        self,
        api: KanbanApiClient,
        *,
        strategy: str = "per_task",
        store: TaskStore | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.api = api
        self.store = store or TaskStore()
        self.notifier = notifier or Notifier()
        self.filters = TaskFilter()
        self.read_model = BoardReadModel(api, self.store, self.notifier)
        self.tracker = DragSessionTracker(self.store)
        self.sync = PersistenceSync(api, self.store, self.notifier, strategy=strategy)

    @classmethod
    def from_config(cls, config: ClientConfig, token: str | None = None, **kwargs) -> DashboardController:
        api = KanbanApiClient(config.base_url, token=token, timeout=config.timeout)
        return cls(api, strategy=config.sync_strategy, **kwargs)

    # ------------------------------------------------------------------
    # Loading and selection
    # ------------------------------------------------------------------

    async def load(self) -> bool:
        return await self.read_model.load()

    async def select_board(self, board_id: str) -> bool:
        return await self.read_model.select_board(board_id)

    async def refresh(self) -> bool:
        return await self.read_model.refresh()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def current_board(self) -> dict | None:
        return self.store.active_board

    @property
    def columns(self) -> ColumnResolver:
        return ColumnResolver.for_board(self.current_board)

    @property
    def board_tasks(self) -> list[dict]:
        return self.store.board_tasks()

    @property
    def filtered_tasks(self) -> list[dict]:
        return self.filters.apply(self.board_tasks)

    def column_tasks(self, status: str) -> list[dict]:
        """Filtered tasks of one column in display order."""
        return self.store.column_tasks(status, self.filtered_tasks)

    @property
    def tags(self) -> list[str]:
        return all_tags(self.board_tasks)

    def analytics(self, now: datetime | None = None) -> dict[str, Any]:
        return compute_analytics(self.board_tasks, now=now)

    # ------------------------------------------------------------------
    # Drag and drop
    # ------------------------------------------------------------------

    def drag_start(self, task_id: str) -> None:
        self.tracker.start(task_id)

    def drag_over(self, task_id: str, over_id: str | None) -> None:
        self.tracker.over(task_id, over_id)

    async def drag_end(self, task_id: str, over_id: str | None) -> SyncResult | None:
        command = self.tracker.drop(task_id, over_id)
        if command is None:
            return None
        return await self.sync.push(command)

    # ------------------------------------------------------------------
    # Boards
    # ------------------------------------------------------------------

    async def create_board(self, name: str, description: str | None = None) -> dict | None:
        try:
            board = await self.api.create_board(name, description)
        except ApiError as e:
            self.notifier.report(e, "Failed to create board")
            return None
        self.store.dispatch(Action(ActionType.LOAD_BOARDS, [*self.store.state.boards, board]))
        self.store.dispatch(Action(ActionType.SELECT_BOARD, board["id"]))
        self.store.dispatch(Action(ActionType.LOAD_TASKS, []))
        self.notifier.success("Board created successfully")
        return board

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(self, fields: dict[str, Any]) -> dict | None:
        board_id = self.store.state.active_board_id
        if board_id is None:
            self.notifier.error("Select a board first")
            return None
        try:
            record = await self.api.create_task(board_id, fields)
        except ApiError as e:
            self.notifier.report(e, "Failed to create task")
            return None
        task = task_for_display(record)
        self.store.dispatch(Action(ActionType.UPSERT_TASK, task))
        self.notifier.success("Task created successfully")
        return task

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> dict | None:
        try:
            record = await self.api.update_task(task_id, changes)
        except ApiError as e:
            self.notifier.report(e, "Failed to update task")
            return None
        task = task_for_display(record)
        self.store.dispatch(Action(ActionType.UPSERT_TASK, task))
        self.notifier.success("Task updated successfully")
        return task

    async def delete_task(self, task_id: str) -> bool:
        try:
            await self.api.delete_task(task_id)
        except ApiError as e:
            self.notifier.report(e, "Failed to delete task")
            return False
        self.store.dispatch(Action(ActionType.REMOVE_TASK, task_id))
        self.notifier.success("Task deleted successfully")
        return True

    async def add_comment(self, task_id: str, content: str) -> dict | None:
        try:
            comment = await self.api.add_comment(task_id, content)
        except ApiError as e:
            self.notifier.report(e, "Failed to add comment")
            return None
        task = self.store.get_task(task_id)
        if task is not None:
            updated = {**task, "comments": [*task.get("comments", []), comment]}
            self.store.dispatch(Action(ActionType.UPSERT_TASK, updated))
        self.notifier.success("Comment added successfully")
        return comment

    async def aclose(self) -> None:
        await self.api.aclose()
