"""Translate completed drag gestures into store intents."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class ItemKind(str, Enum):
    LIST = "list"
    CARD = "card"


@dataclass(frozen=True)
class DragGesture:
    """A finished drag as reported by the board view.

    ``dest_container_id`` is ``None`` when the item was dropped outside any
    valid target.
    """

    item_id: str
    item_kind: ItemKind
    source_container_id: str
    source_index: int
    dest_container_id: Optional[str]
    dest_index: int


@dataclass(frozen=True)
class NoOp:
    pass


@dataclass(frozen=True)
class ReorderLists:
    board_id: str
    list_id: str
    source_index: int
    dest_index: int


@dataclass(frozen=True)
class ReorderCards:
    list_id: str
    card_id: str
    source_index: int
    dest_index: int


@dataclass(frozen=True)
class MoveCard:
    card_id: str
    source_list_id: str
    source_index: int
    dest_list_id: str
    dest_index: int


Intent = Union[NoOp, ReorderLists, ReorderCards, MoveCard]

NOOP = NoOp()


def interpret(gesture: DragGesture, board_id: str) -> Intent:
    """Map a gesture to the store mutation it asks for."""
    if gesture.dest_container_id is None:
        return NOOP
    if (
        gesture.source_container_id == gesture.dest_container_id
        and gesture.source_index == gesture.dest_index
    ):
        return NOOP

    if ItemKind(gesture.item_kind) is ItemKind.LIST:
        # Lists never change board: whatever container ids the view reports,
        # the only sequence a list can land in is the board's own.
        if gesture.source_index == gesture.dest_index:
            return NOOP
        return ReorderLists(
            board_id=board_id,
            list_id=gesture.item_id,
            source_index=gesture.source_index,
            dest_index=gesture.dest_index,
        )

    if gesture.source_container_id == gesture.dest_container_id:
        return ReorderCards(
            list_id=gesture.source_container_id,
            card_id=gesture.item_id,
            source_index=gesture.source_index,
            dest_index=gesture.dest_index,
        )
    return MoveCard(
        card_id=gesture.item_id,
        source_list_id=gesture.source_container_id,
        source_index=gesture.source_index,
        dest_list_id=gesture.dest_container_id,
        dest_index=gesture.dest_index,
    )
