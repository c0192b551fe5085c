"""Persist optimistic moves and roll them back when the server refuses them."""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any

from kanbanflow.client.api_client import ApiError, KanbanApiClient, Unauthorized
from kanbanflow.client.notifications import MOVE_FAILED, MOVE_SUCCEEDED, Notifier
from kanbanflow.client.reorder import MoveCommand
from kanbanflow.client.store import Action, ActionType, TaskPatch, TaskStore
from kanbanflow.config_loader import SYNC_STRATEGIES
from kanbanflow.domain import task_for_display

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    op_id: int
    ok: bool
    request_count: int
    errors: list[Exception] = field(default_factory=list)
    # Tasks a newer operation touched before this one finished.
    superseded: list[str] = field(default_factory=list)

    @property
    def stale(self) -> bool:
        return bool(self.superseded)


class PersistenceSync:
    """Push a :class:`MoveCommand` to the server.

    Strategies:

    ``per_task``
        One PATCH per touched task, sent concurrently. Any failure reverts
        every touched task locally (the server may keep the writes that did
        succeed).
    ``atomic``
        Reorders go to the batch endpoint, which applies all rows in one
        transaction. Status-only moves are a single PATCH either way.

    Every push gets a monotonically increasing operation id. When a newer
    push touches the same task before an older one settles, the older
    result no longer overwrites or reverts that task.
    """

    def __init__(
        self,
        api: KanbanApiClient,
        store: TaskStore,
        notifier: Notifier | None = None,
        strategy: str = "per_task",
    ) -> None:
        if strategy not in SYNC_STRATEGIES:
            raise ValueError(f"Unknown sync strategy: {strategy!r}")
        self._api = api
        self._store = store
        self._notifier = notifier or Notifier()
        self.strategy = strategy
        self._op_ids = itertools.count(1)
        self._latest: dict[str, int] = {}

    def latest_op(self, task_id: str) -> int | None:
        return self._latest.get(task_id)

    async def push(self, command: MoveCommand) -> SyncResult:
        op_id = next(self._op_ids)
        for task_id in command.touched_ids:
            self._latest[task_id] = op_id

        requests = command.requests()
        if self.strategy == "atomic" and command.order_changed:
            outcomes = await self._send_batch(command)
        else:
            outcomes = await asyncio.gather(
                *(self._api.update_task(task_id, body) for task_id, body in requests),
                return_exceptions=True,
            )

        errors = [o for o in outcomes if isinstance(o, BaseException)]
        current = [t for t in command.touched_ids if self._latest.get(t) == op_id]
        superseded = [t for t in command.touched_ids if t not in current]
        result = SyncResult(op_id, not errors, len(requests), list(errors), superseded)

        try:
            if errors:
                self._revert(command, current, op_id, errors)
            else:
                self._confirm(command, current, outcomes)
        finally:
            for task_id in current:
                del self._latest[task_id]

        unexpected = [e for e in errors if not isinstance(e, ApiError)]
        if unexpected:
            raise unexpected[0]
        return result

    async def _send_batch(self, command: MoveCommand) -> list[Any]:
        try:
            records = await self._api.reorder_tasks(command.board_id, command.moves())
        except Exception as e:
            return [e]
        return list(records)

    def _revert(self, command: MoveCommand, current: list[str], op_id: int,
                errors: list[BaseException]) -> None:
        logger.warning(
            "Move %d of %s failed (%d of %d requests): %s",
            op_id, command.task_id, len(errors), len(command.requests()), errors[0],
        )
        if not current:
            logger.info("Move %d superseded by newer moves; nothing to revert", op_id)
            return
        inverse = [patch for patch in command.inverse if patch.task_id in current]
        self._store.dispatch(Action(ActionType.ROLLBACK, inverse))
        expired = next((e for e in errors if isinstance(e, Unauthorized)), None)
        self._notifier.error(str(expired) if expired is not None else MOVE_FAILED)

    def _confirm(self, command: MoveCommand, current: list[str], records: list[Any]) -> None:
        if len(current) < len(command.touched_ids):
            logger.info(
                "Move of %s confirmed after newer moves; keeping newer local state for %s",
                command.task_id,
                sorted(set(command.touched_ids) - set(current)),
            )
        # Server records replace local ones when the server answered for the
        # whole move: one PATCH, or the atomic batch.
        if len(records) == 1 or (self.strategy == "atomic" and command.order_changed):
            patches = [
                TaskPatch(record["id"], task_for_display(record), replace=True)
                for record in records
                if isinstance(record, dict) and record.get("id") in current
            ]
            if patches:
                self._store.dispatch(Action(ActionType.MOVE_TASK, patches))
        self._notifier.success(MOVE_SUCCEEDED)
