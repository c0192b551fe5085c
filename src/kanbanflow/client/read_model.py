"""Load boards, users and tasks from the API into the store."""

from __future__ import annotations

import asyncio
import logging

from kanbanflow.client.api_client import ApiError, KanbanApiClient
from kanbanflow.client.notifications import Notifier
from kanbanflow.client.store import Action, ActionType, TaskStore
from kanbanflow.domain import task_for_display, user_for_display

logger = logging.getLogger(__name__)


class BoardReadModel:
    def __init__(self, api: KanbanApiClient, store: TaskStore, notifier: Notifier) -> None:
        self._api = api
        self._store = store
        self._notifier = notifier

    async def load(self) -> bool:
        """Fetch boards and users together, then select the first board and load its tasks.

        Returns ``False`` (after notifying) if either request failed; the
        store is left untouched in that case.
        """
        try:
            boards, users = await asyncio.gather(
                self._api.list_boards(), self._api.list_users(),
            )
        except ApiError as e:
            logger.warning("Failed to load boards/users: %s", e)
            self._notifier.report(e, "Failed to load data")
            return False

        self._store.dispatch(Action(ActionType.LOAD_BOARDS, boards))
        self._store.dispatch(Action(ActionType.LOAD_USERS, [user_for_display(u) for u in users]))
        if boards:
            return await self.select_board(boards[0]["id"])
        return True

    async def select_board(self, board_id: str) -> bool:
        self._store.dispatch(Action(ActionType.SELECT_BOARD, board_id))
        return await self.load_tasks(board_id)

    async def load_tasks(self, board_id: str) -> bool:
        try:
            tasks = await self._api.list_tasks(board_id)
        except ApiError as e:
            logger.warning("Failed to load tasks for %s: %s", board_id, e)
            self._notifier.report(e, "Failed to load tasks")
            return False
        # A slower response for a board the user has already left is dropped.
        if self._store.state.active_board_id != board_id:
            logger.info("Discarding tasks for %s; active board changed", board_id)
            return False
        self._store.dispatch(Action(ActionType.LOAD_TASKS, [task_for_display(t) for t in tasks]))
        return True

    async def refresh(self) -> bool:
        board_id = self._store.state.active_board_id
        if board_id is None:
            return await self.load()
        return await self.load_tasks(board_id)
