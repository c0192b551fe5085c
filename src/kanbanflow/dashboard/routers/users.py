"""User directory."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from kanbanflow.dashboard.routers._deps import get_board, require_user

router = APIRouter()


@router.get("/api/users", dependencies=[Depends(require_user)])
async def list_users():
    return await get_board().list_users()
