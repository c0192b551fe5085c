"""Health check and task endpoints, including the atomic reorder."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from kanbanflow.dashboard.models import CreateTaskBody, ReorderTasksBody, UpdateTaskBody
from kanbanflow.dashboard.routers._deps import (
    board_errors,
    get_board,
    get_board_optional,
    require_user,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ------------------------------------------------------------------
# Health
# ------------------------------------------------------------------


@router.get("/api/health")
async def health():
    board = get_board_optional()
    if board is None:
        return {"status": "ok", "db": "not_configured"}
    try:
        await board._db.execute_fetchone("SELECT 1")
        return {"status": "ok", "db": "connected"}
    except Exception as e:
        logger.warning("Health check failed: %s", e)
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "db": str(e)},
        )


# ------------------------------------------------------------------
# Board tasks
# ------------------------------------------------------------------


@router.get("/api/boards/{board_id}/tasks")
async def list_board_tasks(board_id: str, user: dict = Depends(require_user)):
    with board_errors():
        return await get_board().get_board_tasks(board_id, user["id"])


@router.post("/api/boards/{board_id}/tasks", status_code=201)
async def create_task(board_id: str, body: CreateTaskBody, user: dict = Depends(require_user)):
    with board_errors():
        return await get_board().create_task(
            board_id,
            user["id"],
            title=body.title,
            description=body.description,
            status=body.status,
            priority=body.priority,
            column_id=body.column_id,
            assignee_id=body.assignee_id,
            due_date=body.due_date,
            tags=body.tags,
            order=body.order,
        )


@router.post("/api/boards/{board_id}/tasks/reorder")
async def reorder_tasks(board_id: str, body: ReorderTasksBody, user: dict = Depends(require_user)):
    moves = [move.model_dump(exclude_none=True) for move in body.moves]
    with board_errors():
        return await get_board().reorder_tasks(board_id, user["id"], moves)


# ------------------------------------------------------------------
# Single task
# ------------------------------------------------------------------


@router.get("/api/tasks/{task_id}")
async def get_task(task_id: str, user: dict = Depends(require_user)):
    with board_errors():
        return await get_board().get_task(task_id, user["id"])


@router.patch("/api/tasks/{task_id}")
async def update_task(task_id: str, body: UpdateTaskBody, user: dict = Depends(require_user)):
    changes = body.model_dump(exclude_unset=True)
    with board_errors():
        return await get_board().update_task(task_id, user["id"], **changes)


@router.delete("/api/tasks/{task_id}")
async def delete_task(task_id: str, user: dict = Depends(require_user)):
    with board_errors():
        await get_board().delete_task(task_id, user["id"])
    return {"status": "deleted", "id": task_id}
