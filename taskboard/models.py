from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

# === Entity records held by the client-side board store ===
#
# Field names are snake_case; ``from_api``/``to_api`` translate to the
# camelCase wire shape served by ``GET /v1/boards/{id}``. Anything the
# reordering core does not interpret travels in ``extra`` untouched.

_CARD_FIELDS = {"id", "title", "position", "listId", "description", "dueDate", "labels", "members"}
_LIST_FIELDS = {"id", "title", "position", "boardId", "cards"}
_BOARD_FIELDS = {"id", "name", "color", "description", "lists"}


@dataclass(frozen=True)
class Card:
    id: str
    title: str
    position: int
    list_id: str
    description: Optional[str] = None
    due_date: Optional[str] = None
    labels: tuple = ()
    members: tuple = ()
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any], list_id: Optional[str] = None) -> Card:
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            position=int(data.get("position", 0)),
            list_id=data.get("listId") or list_id or "",
            description=data.get("description"),
            due_date=data.get("dueDate"),
            labels=tuple(data.get("labels") or ()),
            members=tuple(data.get("members") or ()),
            extra={k: v for k, v in data.items() if k not in _CARD_FIELDS},
        )

    def to_api(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "id": self.id,
            "title": self.title,
            "position": self.position,
            "listId": self.list_id,
            "description": self.description,
            "dueDate": self.due_date,
            "labels": list(self.labels),
            "members": list(self.members),
        }


@dataclass(frozen=True)
class BoardList:
    id: str
    title: str
    position: int
    board_id: str
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any], board_id: Optional[str] = None) -> BoardList:
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            position=int(data.get("position", 0)),
            board_id=data.get("boardId") or board_id or "",
            extra={k: v for k, v in data.items() if k not in _LIST_FIELDS},
        )

    def to_api(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "id": self.id,
            "title": self.title,
            "position": self.position,
            "boardId": self.board_id,
        }


@dataclass(frozen=True)
class Board:
    id: str
    name: str
    color: str
    description: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> Board:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            color=data.get("color", ""),
            description=data.get("description") or "",
            extra={k: v for k, v in data.items() if k not in _BOARD_FIELDS},
        )

    def to_api(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "description": self.description,
        }
