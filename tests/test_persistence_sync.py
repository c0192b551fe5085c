"""Tests for PersistenceSync: confirmation, rollback and stale responses."""

import asyncio

import pytest
from conftest import make_board, make_task

from kanbanflow.client.api_client import (
    SESSION_EXPIRED_MESSAGE,
    NotFound,
    Unauthorized,
    ValidationFailed,
)
from kanbanflow.client.drag import DragSessionTracker
from kanbanflow.client.notifications import MOVE_FAILED, MOVE_SUCCEEDED, Notifier
from kanbanflow.client.store import Action, ActionType, TaskStore
from kanbanflow.client.sync import PersistenceSync


class FakeApi:
    """Stands in for KanbanApiClient; records calls and fails on request."""

    def __init__(self):
        self.calls = []
        self.batches = []
        self.fail_ids = set()
        self.crash_ids = set()
        self.expired_ids = set()
        self.fail_batch = False
        self.hold = None

    async def update_task(self, task_id, changes):
        self.calls.append((task_id, dict(changes)))
        hold = self.hold
        if hold is not None:
            await hold.wait()
        if task_id in self.expired_ids:
            raise Unauthorized()
        if task_id in self.crash_ids:
            raise RuntimeError("connection reset")
        if task_id in self.fail_ids:
            raise ValidationFailed("Invalid move", 400)
        return {**make_task(task_id), **changes, "priority": "HIGH"}

    async def reorder_tasks(self, board_id, moves):
        self.batches.append((board_id, [dict(m) for m in moves]))
        if self.fail_batch:
            raise NotFound("Task not found", 404)
        return [{**make_task(m["id"]), **m, "priority": "LOW"} for m in moves]


@pytest.fixture
def store():
    s = TaskStore()
    s.dispatch(Action(ActionType.LOAD_BOARDS, [make_board()]))
    s.dispatch(Action(ActionType.SELECT_BOARD, "BRD-001"))
    s.dispatch(Action(ActionType.LOAD_TASKS, [
        make_task("A", order=0),
        make_task("B", order=1),
        make_task("C", order=2),
    ]))
    return s


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def notifier():
    return Notifier()


def _drop(store, task_id, over_id):
    tracker = DragSessionTracker(store)
    tracker.start(task_id)
    return tracker.drop(task_id, over_id)


def test_unknown_strategy(api, store):
    with pytest.raises(ValueError):
        PersistenceSync(api, store, strategy="eventually")


async def test_status_move_confirmed_with_server_record(api, store, notifier):
    sync = PersistenceSync(api, store, notifier)
    result = await sync.push(_drop(store, "A", "COL-003"))

    assert result.ok and result.request_count == 1
    assert api.calls == [("A", {"status": "done"})]
    task = store.get_task("A")
    assert task["status"] == "done"
    # Server record replaces the local one, priority mapped for display
    assert task["priority"] == "high"
    assert notifier.latest.message == MOVE_SUCCEEDED
    assert sync.latest_op("A") is None


async def test_reorder_sends_one_request_per_task(api, store, notifier):
    sync = PersistenceSync(api, store, notifier)
    result = await sync.push(_drop(store, "A", "C"))

    assert result.ok and result.request_count == 3
    assert sorted(api.calls) == [
        ("A", {"status": "todo", "order": 2}),
        ("B", {"status": "todo", "order": 0}),
        ("C", {"status": "todo", "order": 1}),
    ]
    assert [t["id"] for t in store.column_tasks("todo")] == ["B", "C", "A"]


async def test_partial_failure_rolls_back_every_task(api, store, notifier):
    before = store.snapshot()
    api.fail_ids = {"B"}
    sync = PersistenceSync(api, store, notifier)

    result = await sync.push(_drop(store, "A", "C"))

    assert not result.ok
    assert len(result.errors) == 1
    assert len(api.calls) == 3
    assert store.tasks == before
    assert notifier.latest.message == MOVE_FAILED


async def test_unexpected_error_rolls_back_and_propagates(api, store, notifier):
    before = store.snapshot()
    api.crash_ids = {"A"}
    sync = PersistenceSync(api, store, notifier)

    with pytest.raises(RuntimeError):
        await sync.push(_drop(store, "A", "COL-002"))
    assert store.tasks == before


async def test_stale_failure_does_not_revert_newer_move(api, store, notifier):
    sync = PersistenceSync(api, store, notifier)
    gate = asyncio.Event()
    api.hold = gate
    api.fail_ids = {"A"}
    first = asyncio.create_task(sync.push(_drop(store, "A", "COL-002")))
    while not api.calls:
        await asyncio.sleep(0)
    assert sync.latest_op("A") == 1

    api.hold = None
    api.fail_ids = set()
    second = await sync.push(_drop(store, "A", "COL-003"))
    assert second.ok and not second.stale
    assert store.get_task("A")["status"] == "done"

    api.fail_ids = {"A"}
    gate.set()
    result = await first

    assert not result.ok
    assert result.stale and result.superseded == ["A"]
    assert store.get_task("A")["status"] == "done"
    assert notifier.latest.message == MOVE_SUCCEEDED


async def test_atomic_strategy_uses_batch_endpoint(api, store, notifier):
    sync = PersistenceSync(api, store, notifier, strategy="atomic")
    result = await sync.push(_drop(store, "C", "A"))

    assert result.ok and result.request_count == 3
    assert api.calls == []
    assert api.batches == [("BRD-001", [
        {"id": "C", "status": "todo", "order": 0},
        {"id": "A", "status": "todo", "order": 1},
        {"id": "B", "status": "todo", "order": 2},
    ])]
    assert all(t["priority"] == "low" for t in store.tasks)
    assert [t["id"] for t in store.column_tasks("todo")] == ["C", "A", "B"]


async def test_atomic_strategy_status_move_is_single_patch(api, store, notifier):
    sync = PersistenceSync(api, store, notifier, strategy="atomic")
    await sync.push(_drop(store, "B", "COL-002"))
    assert api.batches == []
    assert api.calls == [("B", {"status": "in_progress"})]


async def test_atomic_failure_rolls_back(api, store, notifier):
    before = store.snapshot()
    api.fail_batch = True
    sync = PersistenceSync(api, store, notifier, strategy="atomic")

    result = await sync.push(_drop(store, "A", "B"))

    assert not result.ok
    assert isinstance(result.errors[0], NotFound)
    assert store.tasks == before
    assert notifier.latest.message == MOVE_FAILED


async def test_expired_session_rolls_back_with_its_own_message(api, store, notifier):
    before = store.snapshot()
    api.expired_ids = {"C"}
    sync = PersistenceSync(api, store, notifier)

    result = await sync.push(_drop(store, "A", "C"))

    assert not result.ok
    assert store.tasks == before
    assert notifier.latest.message == SESSION_EXPIRED_MESSAGE
