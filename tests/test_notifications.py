"""Tests for the Notifier."""

import logging

from kanbanflow.client.api_client import NotFound, Unauthorized, ValidationFailed
from kanbanflow.client.notifications import Level, Notifier


def test_history_is_bounded():
    notifier = Notifier(max_history=2)
    notifier.info("one")
    notifier.success("two")
    notifier.error("three")
    assert [n.message for n in notifier.history] == ["two", "three"]
    assert notifier.latest.level == Level.ERROR


def test_report_uses_fallback_except_for_expired_session():
    notifier = Notifier()
    notifier.report(NotFound("Task not found", 404), "Failed to update task")
    assert notifier.latest.message == "Failed to update task"
    notifier.report(Unauthorized(), "Failed to update task")
    assert notifier.latest.message.startswith("Your session has expired")


def test_listeners_and_logging(caplog):
    notifier = Notifier()
    received = []
    notifier.subscribe(received.append)
    with caplog.at_level(logging.INFO, logger="kanbanflow.client.notifications"):
        notifier.error("Failed to move task")
    assert received[0].message == "Failed to move task"
    assert any(r.levelno == logging.WARNING for r in caplog.records)

    notifier.clear()
    assert notifier.latest is None


def test_report_includes_validation_reason():
    notifier = Notifier()
    notifier.report(ValidationFailed("Invalid status: 'blocked'", 400), "Failed to update task")
    assert notifier.latest.message == "Failed to update task: Invalid status: 'blocked'"
