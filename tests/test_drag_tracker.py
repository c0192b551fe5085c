"""Tests for DragSessionTracker."""

from dataclasses import fields

import pytest
from conftest import make_board, make_task

from kanbanflow.client.drag import DragSessionTracker
from kanbanflow.client.store import Action, ActionType, TaskStore


@pytest.fixture
def store():
    s = TaskStore()
    s.dispatch(Action(ActionType.LOAD_BOARDS, [make_board()]))
    s.dispatch(Action(ActionType.SELECT_BOARD, "BRD-001"))
    s.dispatch(Action(ActionType.LOAD_TASKS, [
        make_task("A", order=0),
        make_task("B", order=1),
        make_task("C", order=2),
        make_task("D", status="done", order=0),
    ]))
    return s


def _ids(tasks):
    return [t["id"] for t in tasks]


def test_start_records_origin(store):
    tracker = DragSessionTracker(store)
    session = tracker.start("A")
    assert session.origin == store.get_task("A")
    assert session.origin is not store.get_task("A")
    assert tracker.start("missing") is None


def test_hover_over_column_relabels_task(store):
    tracker = DragSessionTracker(store)
    tracker.start("A")
    assert tracker.over("A", "COL-003") is True
    task = store.get_task("A")
    assert (task["status"], task["column_id"]) == ("done", "COL-003")

    # Hovering over tasks only records the target
    assert tracker.over("A", "B") is False
    assert tracker.session.over_id == "B"


def test_drop_without_target_keeps_hover_state(store):
    tracker = DragSessionTracker(store)
    tracker.start("A")
    tracker.over("A", "COL-002")
    assert tracker.drop("A", None) is None
    assert store.get_task("A")["status"] == "in_progress"
    assert tracker.session is None


def test_noop_drop_restores_origin(store):
    before = store.snapshot()
    tracker = DragSessionTracker(store)
    tracker.start("A")
    tracker.over("A", "COL-003")
    assert tracker.drop("A", "COL-001") is None
    assert store.tasks == before


def test_self_drop_restores_origin(store):
    before = store.snapshot()
    tracker = DragSessionTracker(store)
    tracker.start("A")
    tracker.over("A", "COL-002")
    assert tracker.drop("A", "A") is None
    assert store.tasks == before


def test_reorder_drop_applies_forward_patches(store):
    tracker = DragSessionTracker(store)
    tracker.start("A")
    command = tracker.drop("A", "C")
    assert command.order_changed
    assert _ids(store.column_tasks("todo")) == ["B", "C", "A"]


def test_drop_into_other_column_via_hover(store):
    tracker = DragSessionTracker(store)
    tracker.start("A")
    tracker.over("A", "COL-003")
    command = tracker.drop("A", "D")
    assert command.status_changed and command.order_changed
    assert _ids(store.column_tasks("done")) == ["D", "A"]
    assert _ids(store.column_tasks("todo")) == ["B", "C"]


def test_drop_without_start_begins_session(store):
    tracker = DragSessionTracker(store)
    command = tracker.drop("B", "COL-002")
    assert command.requests() == [("B", {"status": "in_progress"})]
    assert store.get_task("B")["column_id"] == "COL-002"


def test_session_keeps_only_the_dragged_task(store):
    session = DragSessionTracker(store).start("A")
    assert {f.name for f in fields(session)} == {"task_id", "origin", "over_id"}
