"""Board session: load, optimistic drag handling, persistence and rollback."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from . import mutator
from .api import ApiError, BoardApi
from .cache import BoardCache
from .drag import DragGesture, Intent, NoOp, ReorderLists, interpret
from .events import SaveStatusBus
from .store import BoardStore

logger = logging.getLogger(__name__)


class ReconciliationError(Exception):
    """The authoritative refetch after a failed save did not succeed."""


@dataclass(frozen=True)
class DragOutcome:
    """How a handled gesture ended.

    ``status`` is one of ``noop``, ``saved``, ``superseded`` (saved, but a
    newer gesture owns the store so the response was not merged) or
    ``reconciled`` (save failed, store was rebuilt from the server; the
    failure is in ``error``).
    """

    status: str
    intent: Intent
    error: Optional[BaseException] = None


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, ApiError):
        return exc.message
    return str(exc) or type(exc).__name__


class BoardSession:
    """Owns the current BoardStore for one open board.

    The store is only ever replaced wholesale, and async continuations read
    ``self._store`` when they resume instead of holding on to the store they
    started with.
    """

    def __init__(
        self,
        board_id: str,
        api: BoardApi,
        cache: Optional[BoardCache] = None,
        events: Optional[SaveStatusBus] = None,
    ) -> None:
        self.board_id = board_id
        self.api = api
        self.cache = cache
        self.events = events if events is not None else SaveStatusBus()
        self._store = BoardStore.empty()
        # Monotonic gesture counter; a confirmation is merged only if its
        # gesture is still the latest one.
        self._gesture_seq = 0
        # Snapshot requests are numbered too, so an older fetch resolving
        # late never overwrites a newer one.
        self._snapshot_seq = 0
        self._snapshot_applied = 0
        # Gesture number of the last confirmation merged into the store.
        self._merged_seq = 0

    @property
    def store(self) -> BoardStore:
        return self._store

    async def load(self, warm_start: bool = False) -> BoardStore:
        """Hydrate from the server, optionally showing the cached copy first."""
        if warm_start and self.cache is not None:
            cached = self.cache.load(self.board_id)
            if cached is not None:
                logger.debug("Warm start for board %s from cache", self.board_id)
                self._store = cached
        await self._fetch_snapshot()
        logger.info(
            "Loaded board %s: %d lists, %d cards",
            self.board_id,
            len(self._store.lists),
            len(self._store.cards),
        )
        return self._store

    async def _fetch_snapshot(self) -> bool:
        while True:
            self._snapshot_seq += 1
            ticket = self._snapshot_seq
            merged_before = self._merged_seq
            snapshot = await self.api.fetch_board(self.board_id)
            store = BoardStore.hydrate(snapshot)
            if ticket < self._snapshot_applied:
                logger.debug("Dropping stale snapshot %d for board %s", ticket, self.board_id)
                return False
            if self._merged_seq != merged_before:
                # a save was confirmed while this fetch was in flight; the
                # snapshot may predate it
                logger.debug("Refetching board %s after a confirmed save", self.board_id)
                continue
            self._snapshot_applied = ticket
            self._store = store
            return True

    async def handle_drag(self, gesture: DragGesture) -> DragOutcome:
        """Apply a gesture optimistically, persist it, and roll back on failure.

        Persistence failures never propagate; the outcome reports them. Only
        a failed rollback raises, as ``ReconciliationError``.
        """
        intent = interpret(gesture, self.board_id)
        if isinstance(intent, NoOp):
            return DragOutcome("noop", intent)

        self._store = mutator.apply(self._store, intent)
        self._gesture_seq += 1
        seq = self._gesture_seq
        self._schedule_cache()

        payload = mutator.reorder_payload(self._store, intent)
        self.events.save_started(self.board_id)
        try:
            if isinstance(intent, ReorderLists):
                confirmed = await self.api.reorder_lists(payload)
            else:
                confirmed = await self.api.reorder_cards(payload)
        except Exception as exc:
            message = describe_error(exc)
            logger.warning("Saving %s on board %s failed: %s", type(intent).__name__, self.board_id, message)
            self.events.save_failed(self.board_id, message)
            await self.reconcile()
            return DragOutcome("reconciled", intent, exc)

        self.events.save_succeeded(self.board_id)
        if seq != self._gesture_seq:
            return DragOutcome("superseded", intent)
        if isinstance(intent, ReorderLists):
            self._store = self._store.with_confirmed_lists(confirmed)
        else:
            self._store = self._store.with_confirmed_cards(confirmed)
        self._merged_seq = seq
        self._schedule_cache()
        return DragOutcome("saved", intent)

    async def reconcile(self) -> BoardStore:
        """Throw away local state and rebuild it from the server.

        No local undo is attempted. If the fetch fails the current store is
        kept and ``ReconciliationError`` is raised; there is no retry.
        """
        logger.info("Reconciling board %s with server", self.board_id)
        try:
            applied = await self._fetch_snapshot()
        except Exception as exc:
            logger.error("Reconciliation of board %s failed: %s", self.board_id, describe_error(exc))
            raise ReconciliationError(f"could not refetch board {self.board_id}: {describe_error(exc)}") from exc
        if applied:
            self._schedule_cache()
        return self._store

    def _schedule_cache(self) -> None:
        if self.cache is not None and self._store.board is not None:
            self.cache.schedule(self.board_id, self._store)

    async def close(self) -> None:
        """Flush the cache, drop the store and close the API client."""
        if self.cache is not None:
            self.cache.flush()
        self._store = BoardStore.empty()
        await self.api.aclose()
