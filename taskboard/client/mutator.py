"""Optimistic application of drag intents to a BoardStore."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from .drag import Intent, MoveCard, NoOp, ReorderCards, ReorderLists
from .store import BoardStore

logger = logging.getLogger(__name__)


class MutationError(LookupError):
    """The intent names a list or card the store does not hold."""


def _clamp(index: int, length: int) -> int:
    return max(0, min(index, length))


def _locate(ids: Sequence[str], item_id: str, hint: int) -> int:
    """Index of ``item_id``, trusting ``hint`` when it already points at it."""
    if 0 <= hint < len(ids) and ids[hint] == item_id:
        return hint
    try:
        return list(ids).index(item_id)
    except ValueError:
        raise MutationError(f"{item_id} is not in the source sequence") from None


def _sequence(store: BoardStore, list_id: str) -> List[str]:
    if list_id not in store.cards_by_list:
        raise MutationError(f"unknown list {list_id}")
    return list(store.card_ids(list_id))


def apply(store: BoardStore, intent: Intent) -> BoardStore:
    """Return a new store with ``intent`` applied; ``store`` itself is never modified.

    Sequences are rebuilt as fresh lists and swapped in through a single
    ``with_*`` call, so a failure part-way leaves nothing half-applied.
    """
    if isinstance(intent, NoOp):
        return store

    if isinstance(intent, ReorderLists):
        lists = list(store.lists)
        index = _locate([bl.id for bl in lists], intent.list_id, intent.source_index)
        moved = lists.pop(index)
        lists.insert(_clamp(intent.dest_index, len(lists)), moved)
        logger.debug("Reordered list %s: %d -> %d", intent.list_id, index, intent.dest_index)
        return store.with_lists(lists)

    if isinstance(intent, ReorderCards):
        ids = _sequence(store, intent.list_id)
        ids.pop(_locate(ids, intent.card_id, intent.source_index))
        ids.insert(_clamp(intent.dest_index, len(ids)), intent.card_id)
        return store.with_sequences({intent.list_id: ids})

    if isinstance(intent, MoveCard):
        if intent.source_list_id == intent.dest_list_id:
            return apply(
                store,
                ReorderCards(intent.source_list_id, intent.card_id, intent.source_index, intent.dest_index),
            )
        source = _sequence(store, intent.source_list_id)
        dest = _sequence(store, intent.dest_list_id)
        source.pop(_locate(source, intent.card_id, intent.source_index))
        dest.insert(_clamp(intent.dest_index, len(dest)), intent.card_id)
        logger.debug("Moved card %s: %s -> %s", intent.card_id, intent.source_list_id, intent.dest_list_id)
        return store.with_sequences({intent.source_list_id: source, intent.dest_list_id: dest})

    raise TypeError(f"unsupported intent {intent!r}")


def reorder_payload(store: BoardStore, intent: Intent) -> List[Dict[str, Any]]:
    """Position assignments to persist for ``intent``, read from the mutated store.

    Cards: every card of each affected list as ``{id, position, listId}``.
    Lists: every list of the board as ``{id, position}``.
    """
    if isinstance(intent, ReorderLists):
        return [{"id": bl.id, "position": bl.position} for bl in store.lists]
    if isinstance(intent, ReorderCards):
        affected = [intent.list_id]
    elif isinstance(intent, MoveCard):
        affected = [intent.source_list_id, intent.dest_list_id]
    else:
        return []
    return [
        {"id": card.id, "position": card.position, "listId": card.list_id}
        for list_id in dict.fromkeys(affected)
        for card in store.cards_in(list_id)
    ]
