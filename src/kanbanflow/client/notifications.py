"""User-facing notifications with a bounded history; every notification is also logged."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Callable

from kanbanflow.client.api_client import ApiError, Unauthorized, ValidationFailed

logger = logging.getLogger(__name__)

MOVE_SUCCEEDED = "Task moved successfully"
MOVE_FAILED = "Failed to move task. Changes have been reverted."


class Level(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


@dataclass(frozen=True)
class Notification:
    level: Level
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier:
    MAX_HISTORY = 100

    def __init__(self, max_history: int | None = None) -> None:
        self._history: deque[Notification] = deque(maxlen=max_history or self.MAX_HISTORY)
        self._listeners: list[Callable[[Notification], None]] = []

    def subscribe(self, listener: Callable[[Notification], None]) -> None:
        self._listeners.append(listener)

    def _push(self, level: Level, message: str) -> Notification:
        note = Notification(level, message)
        self._history.append(note)
        log_level = logging.WARNING if level == Level.ERROR else logging.INFO
        logger.log(log_level, "[%s] %s", level, message)
        for listener in list(self._listeners):
            listener(note)
        return note

    def success(self, message: str) -> Notification:
        return self._push(Level.SUCCESS, message)

    def error(self, message: str) -> Notification:
        return self._push(Level.ERROR, message)

    def info(self, message: str) -> Notification:
        return self._push(Level.INFO, message)

    def report(self, error: ApiError, fallback: str) -> Notification:
        """Surface *error* to the user.

        Expired sessions get their own message. Validation failures add the
        server's reason after *fallback*.
        """
        if isinstance(error, Unauthorized):
            return self.error(str(error))
        if isinstance(error, ValidationFailed) and str(error):
            return self.error(f"{fallback}: {error}")
        return self.error(fallback)

    @property
    def history(self) -> list[Notification]:
        return list(self._history)

    @property
    def latest(self) -> Notification | None:
        return self._history[-1] if self._history else None

    def clear(self) -> None:
        self._history.clear()
