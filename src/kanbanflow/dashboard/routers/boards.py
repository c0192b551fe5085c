"""Board listing, creation and membership."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from kanbanflow.dashboard.models import AddMemberBody, CreateBoardBody
from kanbanflow.dashboard.routers._deps import board_errors, get_board, require_user

router = APIRouter()


@router.get("/api/boards")
async def list_boards(user: dict = Depends(require_user)):
    return await get_board().list_boards(user["id"])


@router.post("/api/boards", status_code=201)
async def create_board(body: CreateBoardBody, user: dict = Depends(require_user)):
    with board_errors():
        return await get_board().create_board(user["id"], body.name, body.description)


@router.get("/api/boards/{board_id}")
async def get_board_detail(board_id: str, user: dict = Depends(require_user)):
    with board_errors():
        return await get_board().get_board(board_id, user["id"])


@router.post("/api/boards/{board_id}/members")
async def add_member(board_id: str, body: AddMemberBody, user: dict = Depends(require_user)):
    with board_errors():
        return await get_board().add_member(board_id, user["id"], body.user_id)
