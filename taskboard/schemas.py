from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None
    requestId: Optional[str] = None


class Health(BaseModel):
    status: str = "ok"


class Version(BaseModel):
    version: str


class ProfileIn(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    email: str = Field(min_length=3, max_length=320)


class UserSummary(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


# === Boards ===


class BoardIn(BaseModel):
    name: str = Field(min_length=1, max_length=140)
    color: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=2000)


class BoardPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=140)
    color: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=2000)


class BoardOut(BaseModel):
    id: str
    name: str
    color: str
    description: str
    ownerId: str
    createdAt: datetime
    updatedAt: datetime
    listsCount: int = 0


class BoardsPage(BaseModel):
    boards: list[BoardOut]


# === Labels ===


class LabelIn(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    color: str


class LabelPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=80)
    color: Optional[str] = None


class LabelOut(BaseModel):
    id: str
    boardId: str
    name: str
    color: str


# === Cards ===


class CardIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=8000)
    dueDate: Optional[datetime] = None


class CardPatch(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=8000)
    dueDate: Optional[datetime] = None


class CardOut(BaseModel):
    id: str
    listId: str
    title: str
    description: Optional[str]
    dueDate: Optional[datetime]
    position: int
    labels: list[LabelOut] = Field(default_factory=list)
    members: list[UserSummary] = Field(default_factory=list)
    createdAt: datetime
    updatedAt: datetime


class CardPosition(BaseModel):
    id: str
    position: int = Field(ge=0)
    listId: Optional[str] = None


class CardMove(BaseModel):
    listId: Optional[str] = None
    position: Optional[int] = Field(default=None, ge=0)


class CardsReorder(BaseModel):
    cards: list[CardPosition]


class CardsPage(BaseModel):
    cards: list[CardOut]


# === Lists ===


class ListIn(BaseModel):
    title: str = Field(min_length=1, max_length=140)


class ListOut(BaseModel):
    id: str
    boardId: str
    title: str
    position: int
    cards: list[CardOut] = Field(default_factory=list)


class ListPosition(BaseModel):
    id: str
    position: int = Field(ge=0)


class ListsReorder(BaseModel):
    lists: list[ListPosition]


class ListsPage(BaseModel):
    lists: list[ListOut]


class BoardDetail(BoardOut):
    lists: list[ListOut]
    labels: list[LabelOut]
    owner: UserSummary


class BoardSnapshot(BaseModel):
    board: BoardDetail


# === Invitations ===


class InvitationIn(BaseModel):
    email: str = Field(min_length=3, max_length=320)


class InvitationOut(BaseModel):
    id: str
    boardId: str
    boardName: str
    email: str
    status: str
    senderId: str
    expiresAt: datetime
    token: Optional[str] = None


class InvitationsPage(BaseModel):
    invitations: list[InvitationOut]
