"""FastAPI backend for kanban boards with WebSocket event streaming."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from fastapi import FastAPI, WebSocket
from starlette.middleware.cors import CORSMiddleware

from kanbanflow.config_loader import AppConfig, default_config

if TYPE_CHECKING:
    from kanbanflow.auth import SessionManager
    from kanbanflow.backend.event_bus import EventBus
    from kanbanflow.backend.task_board import TaskBoard

_logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# ConnectionManager (used by WebSocket router)
# ------------------------------------------------------------------


class ConnectionManager:
    """Open WebSockets and the user signed in on each.

    An event is only sent to users who can see its board; anonymous
    connections get ping/pong but no events.
    """

    def __init__(self):
        self.active: dict[WebSocket, str | None] = {}

    async def connect(self, ws: WebSocket, user_id: str | None = None):
        await ws.accept()
        self.active[ws] = user_id

    def disconnect(self, ws: WebSocket):
        self.active.pop(ws, None)

    async def broadcast(
        self,
        data: dict[str, Any],
        can_access: Callable[[str, str], Awaitable[bool]] | None = None,
    ):
        board_id = data.get("board_id")
        if board_id is None or can_access is None:
            return
        message = json.dumps(data, default=str)
        for ws, user_id in list(self.active.items()):
            if user_id is None or not await can_access(board_id, user_id):
                continue
            try:
                await ws.send_text(message)
            except Exception:
                _logger.debug("Dropping dead WebSocket connection")
                self.disconnect(ws)


def create_app(
    task_board: TaskBoard | None = None,
    event_bus: EventBus | None = None,
    session_manager: SessionManager | None = None,
    config: AppConfig | None = None,
) -> FastAPI:
    """Build the FastAPI app around already-initialised components."""
    config = config or default_config()
    app = FastAPI(
        title="Kanbanflow",
        description="Kanban boards with drag-and-drop ordering, comments and analytics.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
    )

    ws_manager = ConnectionManager()
    app.state.ws_manager = ws_manager

    async def broadcast_event(event: dict):
        can_access = task_board.can_access if task_board is not None else None
        await ws_manager.broadcast(event, can_access)

    if event_bus is not None:
        event_bus.subscribe("*", broadcast_event)

    # ------------------------------------------------------------------
    # Wire up shared deps for routers
    # ------------------------------------------------------------------
    from kanbanflow.dashboard.routers import auth as auth_router
    from kanbanflow.dashboard.routers import ws as ws_router
    from kanbanflow.dashboard.routers._deps import set_components

    set_components(task_board, session_manager)
    auth_router.set_cookie_policy(config.session.secure_cookies)
    ws_router.set_ws_manager(ws_manager)

    # ------------------------------------------------------------------
    # Include routers
    # ------------------------------------------------------------------
    from kanbanflow.dashboard.routers.analytics import router as analytics_router
    from kanbanflow.dashboard.routers.boards import router as boards_router
    from kanbanflow.dashboard.routers.comments import router as comments_router
    from kanbanflow.dashboard.routers.tasks import router as tasks_router
    from kanbanflow.dashboard.routers.users import router as users_router

    app.include_router(auth_router.router, tags=["Auth"])
    app.include_router(boards_router, tags=["Boards"])
    app.include_router(tasks_router, tags=["Tasks"])
    app.include_router(comments_router, tags=["Comments"])
    app.include_router(users_router, tags=["Users"])
    app.include_router(analytics_router, tags=["Analytics"])
    app.include_router(ws_router.router)

    _logger.info("Dashboard app created (%s)", config.app_name)
    return app
