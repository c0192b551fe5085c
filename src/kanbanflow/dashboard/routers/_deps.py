"""Shared dependencies: components injected by app.py during create_app()."""

from __future__ import annotations

from contextlib import contextmanager

from fastapi import HTTPException, Request


_task_board = None
_sessions = None


def set_components(task_board, session_manager):
    """Called by app.py to inject the task board and session manager."""
    global _task_board, _sessions
    _task_board = task_board
    _sessions = session_manager


def get_board():
    """Return the task board or raise 503 if the app has not been wired."""
    if _task_board is None:
        raise HTTPException(503, "Task board is not available")
    return _task_board


def get_board_optional():
    return _task_board


def get_sessions_optional():
    return _sessions


def get_sessions():
    if _sessions is None:
        raise HTTPException(503, "Session manager is not available")
    return _sessions


async def require_user(request: Request) -> dict:
    """Dependency returning the signed-in user, or raising 401."""
    user = await get_sessions().current_user(request)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


@contextmanager
def board_errors():
    """Translate TaskBoard exceptions into HTTP errors."""
    try:
        yield
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e).strip("'\""))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
