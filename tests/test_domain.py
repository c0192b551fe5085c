"""Tests for statuses, columns and priority mapping."""

from kanbanflow.domain import (
    DEFAULT_COLUMNS,
    STATUS_ORDER,
    column_config,
    is_priority,
    task_for_display,
    to_priority_code,
    to_priority_label,
)


def test_default_columns_in_display_order():
    assert [c["key"] for c in DEFAULT_COLUMNS] == ["todo", "in_progress", "done"]
    assert STATUS_ORDER == {"todo": 0, "in_progress": 1, "done": 2}


def test_column_config_falls_back_to_todo():
    assert column_config("done")["title"] == "Done"
    assert column_config("archived")["key"] == "todo"


def test_priority_mapping():
    assert to_priority_code("high") == "HIGH"
    assert to_priority_code("LOW") == "LOW"
    assert to_priority_code(None) == "MEDIUM"
    assert to_priority_code("urgent") == "MEDIUM"
    assert to_priority_label("HIGH") == "high"
    assert to_priority_label("medium") == "medium"
    assert is_priority("Low")
    assert not is_priority("urgent")


def test_task_for_display_copies_nested_records():
    record = {
        "id": "TSK-001",
        "priority": "HIGH",
        "tags": None,
        "assignee": {"id": "USR-001", "name": "Ann", "image": "https://img/ann.png"},
        "comments": [{"id": "CMT-001", "content": "hi"}],
    }
    shown = task_for_display(record)
    assert shown["priority"] == "high"
    assert shown["tags"] == []
    assert shown["attachments"] == []
    assert shown["assignee"]["avatar"] == "https://img/ann.png"

    shown["comments"][0]["content"] = "changed"
    assert record["comments"][0]["content"] == "hi"
    assert record["priority"] == "HIGH"
