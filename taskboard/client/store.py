"""Normalized board store: cards by id plus per-list ordered id sequences."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from ..models import Board, BoardList, Card

logger = logging.getLogger(__name__)


class StoreInvariantError(ValueError):
    """Raised when a store's sequences and records disagree."""


def _by_position(items: Sequence[Dict[str, Any]]) -> list[Dict[str, Any]]:
    # sorted() is stable, so equal positions keep their server order
    return sorted(items, key=lambda item: item.get("position", 0))


@dataclass(frozen=True)
class BoardStore:
    """Immutable snapshot of a board's lists and cards.

    ``cards`` owns the single copy of each card. ``cards_by_list`` is an
    ordering index: each list id maps to the ids of its cards in render
    order. Every operation returns a new store and leaves ``self`` alone,
    so a caller either sees the whole change or none of it.

    Invariants (see ``check_invariants``): every sequenced id is a key of
    ``cards``, every card sits in exactly the sequence named by its
    ``list_id``, and positions equal sequence indices for cards and lists.
    """

    board: Optional[Board] = None
    lists: Tuple[BoardList, ...] = ()
    cards: Mapping[str, Card] = field(default_factory=dict)
    cards_by_list: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> BoardStore:
        return cls()

    @classmethod
    def hydrate(cls, snapshot: Mapping[str, Any]) -> BoardStore:
        """Build a store from a ``GET /boards/{id}`` body (or its ``board`` object)."""
        data = snapshot.get("board", snapshot)
        board = Board.from_api(data)
        lists = []
        cards: Dict[str, Card] = {}
        cards_by_list: Dict[str, Tuple[str, ...]] = {}
        for index, raw_list in enumerate(_by_position(data.get("lists") or [])):
            board_list = replace(BoardList.from_api(raw_list, board.id), position=index)
            lists.append(board_list)
            ids = []
            for card_index, raw_card in enumerate(_by_position(raw_list.get("cards") or [])):
                card = replace(Card.from_api(raw_card), position=card_index, list_id=board_list.id)
                cards[card.id] = card
                ids.append(card.id)
            cards_by_list[board_list.id] = tuple(ids)
        store = cls(board=board, lists=tuple(lists), cards=cards, cards_by_list=cards_by_list)
        store.check_invariants()
        logger.debug("Hydrated board %s: %d lists, %d cards", board.id, len(lists), len(cards))
        return store

    # === Reads ===

    @property
    def board_id(self) -> Optional[str]:
        return self.board.id if self.board else None

    def list_ids(self) -> Tuple[str, ...]:
        return tuple(bl.id for bl in self.lists)

    def find_list(self, list_id: str) -> Optional[BoardList]:
        return next((bl for bl in self.lists if bl.id == list_id), None)

    def card_ids(self, list_id: str) -> Tuple[str, ...]:
        return self.cards_by_list.get(list_id, ())

    def cards_in(self, list_id: str) -> list[Card]:
        return [self.cards[cid] for cid in self.card_ids(list_id)]

    def check_invariants(self) -> None:
        list_ids = self.list_ids()
        if len(set(list_ids)) != len(list_ids):
            raise StoreInvariantError("duplicate list id in board sequence")
        for index, board_list in enumerate(self.lists):
            if board_list.position != index:
                raise StoreInvariantError(f"list {board_list.id} has position {board_list.position}, expected {index}")
        if set(self.cards_by_list) != set(list_ids):
            raise StoreInvariantError("card sequences do not match the board's lists")

        seen: Dict[str, str] = {}
        for list_id, ids in self.cards_by_list.items():
            for index, card_id in enumerate(ids):
                if card_id in seen:
                    raise StoreInvariantError(f"card {card_id} appears in {seen[card_id]} and {list_id}")
                seen[card_id] = list_id
                card = self.cards.get(card_id)
                if card is None:
                    raise StoreInvariantError(f"card {card_id} in list {list_id} has no record")
                if card.list_id != list_id:
                    raise StoreInvariantError(f"card {card_id} says list {card.list_id} but sits in {list_id}")
                if card.position != index:
                    raise StoreInvariantError(f"card {card_id} has position {card.position}, expected {index}")
        orphans = set(self.cards) - set(seen)
        if orphans:
            raise StoreInvariantError(f"cards not in any list: {sorted(orphans)}")

    # === Derivations ===

    def with_lists(self, ordered: Iterable[BoardList]) -> BoardStore:
        """Replace the board's list order, rewriting list positions densely."""
        lists = tuple(
            bl if bl.position == index else replace(bl, position=index) for index, bl in enumerate(ordered)
        )
        return replace(self, lists=lists)

    def with_sequences(self, sequences: Mapping[str, Sequence[str]]) -> BoardStore:
        """Replace the given lists' card sequences.

        Each listed card gets ``position`` set to its index and ``list_id``
        set to the list it now sits in; sequences not named are untouched.
        """
        cards = dict(self.cards)
        cards_by_list = dict(self.cards_by_list)
        for list_id, ids in sequences.items():
            for index, card_id in enumerate(ids):
                card = cards[card_id]
                if card.position != index or card.list_id != list_id:
                    cards[card_id] = replace(card, position=index, list_id=list_id)
            cards_by_list[list_id] = tuple(ids)
        return replace(self, cards=cards, cards_by_list=cards_by_list)

    def with_confirmed_cards(self, confirmed: Iterable[Union[Card, Mapping[str, Any]]]) -> BoardStore:
        """Merge server-confirmed card records, then re-derive affected sequences."""
        incoming = [c if isinstance(c, Card) else Card.from_api(c) for c in confirmed]
        incoming = [c for c in incoming if c.list_id in self.cards_by_list]
        if not incoming:
            return self

        cards = dict(self.cards)
        affected = set()
        for card in incoming:
            previous = cards.get(card.id)
            if previous is not None:
                affected.add(previous.list_id)
            affected.add(card.list_id)
            cards[card.id] = card

        sequences = {}
        for list_id in affected:
            members = [cid for cid in self.card_ids(list_id) if cards[cid].list_id == list_id]
            members += [c.id for c in incoming if c.list_id == list_id and c.id not in members]
            order = {cid: index for index, cid in enumerate(members)}
            sequences[list_id] = sorted(members, key=lambda cid: (cards[cid].position, order[cid]))
        return replace(self, cards=cards).with_sequences(sequences)

    def with_confirmed_lists(self, confirmed: Iterable[Union[BoardList, Mapping[str, Any]]]) -> BoardStore:
        """Apply server-confirmed list positions to the board's list order."""
        positions = {}
        for item in confirmed:
            board_list = item if isinstance(item, BoardList) else BoardList.from_api(item)
            positions[board_list.id] = board_list.position
        if not positions:
            return self
        indexed = list(enumerate(self.lists))
        indexed.sort(key=lambda pair: (positions.get(pair[1].id, pair[1].position), pair[0]))
        return self.with_lists(bl for _, bl in indexed)

    # === Advisory cache shape ===

    def to_persisted(self) -> Dict[str, Any]:
        return {
            "board": self.board.to_api() if self.board else None,
            "lists": [bl.to_api() for bl in self.lists],
            "cards": {
                "cards": {cid: card.to_api() for cid, card in self.cards.items()},
                "cardsByList": {lid: list(ids) for lid, ids in self.cards_by_list.items()},
            },
        }

    @classmethod
    def from_persisted(cls, data: Mapping[str, Any]) -> BoardStore:
        board = Board.from_api(data["board"]) if data.get("board") else None
        cards_blob = data.get("cards") or {}
        store = cls(
            board=board,
            lists=tuple(BoardList.from_api(raw) for raw in data.get("lists") or []),
            cards={cid: Card.from_api(raw) for cid, raw in (cards_blob.get("cards") or {}).items()},
            cards_by_list={lid: tuple(ids) for lid, ids in (cards_blob.get("cardsByList") or {}).items()},
        )
        store.check_invariants()
        return store
