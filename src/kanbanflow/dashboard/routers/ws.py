"""WebSocket endpoint streaming board events to the signed-in user."""

from __future__ import annotations

import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from kanbanflow.dashboard.routers._deps import get_sessions_optional

router = APIRouter()

# Connection manager injected by app.py
_ws_manager = None


def set_ws_manager(ws_manager):
    global _ws_manager
    _ws_manager = ws_manager


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    # Same session cookie / bearer header as the HTTP API
    sessions = get_sessions_optional()
    user = await sessions.current_user(ws) if sessions is not None else None
    await _ws_manager.connect(ws, user["id"] if user else None)
    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if isinstance(msg, dict) and msg.get("type") == "ping":
                await ws.send_text(json.dumps({"type": "pong"}))
    except WebSocketDisconnect:
        pass
    finally:
        _ws_manager.disconnect(ws)
