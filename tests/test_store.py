"""Tests for the board reducer and TaskStore."""

import pytest
from conftest import make_board, make_task

from kanbanflow.client.store import (
    Action,
    ActionType,
    BoardState,
    TaskPatch,
    TaskStore,
    reduce,
)


@pytest.fixture
def store():
    s = TaskStore()
    s.dispatch(Action(ActionType.LOAD_BOARDS, [make_board(), make_board("BRD-002")]))
    s.dispatch(Action(ActionType.SELECT_BOARD, "BRD-001"))
    s.dispatch(Action(ActionType.LOAD_TASKS, [
        make_task("TSK-001", order=1),
        make_task("TSK-002", order=0),
        make_task("TSK-003", status="done"),
        make_task("TSK-004", board_id="BRD-002"),
    ]))
    return s


def test_reduce_does_not_mutate_state():
    state = BoardState()
    new = reduce(state, Action(ActionType.LOAD_TASKS, [make_task("TSK-001")]))
    assert state.tasks == []
    assert len(new.tasks) == 1


def test_reduce_rejects_unknown_action():
    with pytest.raises(ValueError):
        reduce(BoardState(), Action("explode"))


def test_active_board_and_board_tasks(store):
    assert store.active_board["id"] == "BRD-001"
    assert [t["id"] for t in store.board_tasks()] == ["TSK-001", "TSK-002", "TSK-003"]
    assert [t["id"] for t in store.board_tasks("BRD-002")] == ["TSK-004"]


def test_column_tasks_sorted_by_order(store):
    assert [t["id"] for t in store.column_tasks("todo")] == ["TSK-002", "TSK-004", "TSK-001"]
    assert [t["id"] for t in store.column_tasks("todo", store.board_tasks())] == [
        "TSK-002", "TSK-001",
    ]


def test_upsert_and_remove(store):
    store.dispatch(Action(ActionType.UPSERT_TASK, make_task("TSK-001", title="Renamed")))
    assert store.get_task("TSK-001")["title"] == "Renamed"
    assert [t["id"] for t in store.tasks][0] == "TSK-001"

    store.dispatch(Action(ActionType.UPSERT_TASK, make_task("TSK-009")))
    assert store.tasks[-1]["id"] == "TSK-009"

    store.dispatch(Action(ActionType.REMOVE_TASK, "TSK-009"))
    assert store.get_task("TSK-009") is None


def test_move_then_rollback_restores_snapshot(store):
    before = store.snapshot()
    original = store.get_task("TSK-001")
    store.dispatch(Action(ActionType.MOVE_TASK, [
        TaskPatch("TSK-001", {"status": "done", "column_id": "COL-003", "order": 0}),
    ]))
    assert store.get_task("TSK-001")["status"] == "done"
    assert [t["id"] for t in store.tasks] == [t["id"] for t in before]

    store.dispatch(Action(ActionType.ROLLBACK, [TaskPatch("TSK-001", original, replace=True)]))
    assert store.tasks == before


def test_patch_does_not_share_nested_values():
    tags = ["a"]
    patched = TaskPatch("TSK-001", {"tags": tags}).apply(make_task("TSK-001"))
    tags.append("b")
    assert patched["tags"] == ["a"]


def test_subscribe_and_unsubscribe(store):
    seen = []
    unsubscribe = store.subscribe(lambda state, action: seen.append(action.type))
    store.dispatch(Action(ActionType.SELECT_BOARD, "BRD-002"))
    unsubscribe()
    store.dispatch(Action(ActionType.SELECT_BOARD, "BRD-001"))
    assert seen == [ActionType.SELECT_BOARD]
