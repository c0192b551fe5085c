"""Per-board analytics."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from kanbanflow.analytics import compute_analytics
from kanbanflow.dashboard.routers._deps import board_errors, get_board, require_user

router = APIRouter()


@router.get("/api/boards/{board_id}/analytics")
async def board_analytics(board_id: str, user: dict = Depends(require_user)):
    with board_errors():
        tasks = await get_board().get_board_tasks(board_id, user["id"])
    return {"board_id": board_id, **compute_analytics(tasks)}
