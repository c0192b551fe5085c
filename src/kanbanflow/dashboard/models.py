"""Pydantic request bodies shared across dashboard routers."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class SignUpBody(BaseModel):
    name: str = Field(min_length=1)
    email: str
    password: str
    image: Optional[str] = None


class SignInBody(BaseModel):
    email: str
    password: str


class CreateBoardBody(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class AddMemberBody(BaseModel):
    user_id: str


class CreateTaskBody(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    column_id: Optional[str] = None
    assignee_id: Optional[str] = None
    due_date: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    order: Optional[int] = Field(default=None, ge=0)


class UpdateTaskBody(BaseModel):
    """Partial update; only fields present in the request are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    column_id: Optional[str] = None
    assignee_id: Optional[str] = None
    due_date: Optional[str] = None
    tags: Optional[list[str]] = None
    order: Optional[int] = Field(default=None, ge=0)


class ReorderMove(BaseModel):
    id: str
    order: int = Field(ge=0)
    status: Optional[str] = None
    column_id: Optional[str] = None


class ReorderTasksBody(BaseModel):
    moves: list[ReorderMove] = Field(min_length=1)


class CreateCommentBody(BaseModel):
    content: str = Field(min_length=1)


class CreateAttachmentBody(BaseModel):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    type: str
    size: int = Field(default=0, ge=0)
