"""Task comments and attachments."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from kanbanflow.dashboard.models import CreateAttachmentBody, CreateCommentBody
from kanbanflow.dashboard.routers._deps import board_errors, get_board, require_user

router = APIRouter()


@router.get("/api/tasks/{task_id}/comments")
async def list_comments(task_id: str, user: dict = Depends(require_user)):
    with board_errors():
        return await get_board().list_comments(task_id, user["id"])


@router.post("/api/tasks/{task_id}/comments", status_code=201)
async def add_comment(task_id: str, body: CreateCommentBody, user: dict = Depends(require_user)):
    with board_errors():
        return await get_board().add_comment(task_id, user["id"], body.content)


@router.post("/api/tasks/{task_id}/attachments", status_code=201)
async def add_attachment(
    task_id: str, body: CreateAttachmentBody, user: dict = Depends(require_user),
):
    with board_errors():
        return await get_board().add_attachment(
            task_id, user["id"], body.name, body.url, body.type, body.size,
        )
