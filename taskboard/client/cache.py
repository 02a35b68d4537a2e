"""
Advisory write-behind cache of board reorder state.

Used only to warm-start a fresh session before the authoritative fetch
returns; never consulted during reconciliation.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from .. import config
from .store import BoardStore, StoreInvariantError

logger = logging.getLogger(__name__)


def cache_key(board_id: str) -> str:
    return f"board_{board_id}"


class DurableStorage:
    """String slots keyed by name."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(DurableStorage):
    def __init__(self) -> None:
        self._slots: Dict[str, str] = {}
        self.writes = 0

    def get(self, key: str) -> Optional[str]:
        return self._slots.get(key)

    def set(self, key: str, value: str) -> None:
        self._slots[key] = value
        self.writes += 1

    def delete(self, key: str) -> None:
        self._slots.pop(key, None)


class FileStorage(DurableStorage):
    """One JSON file per key under ``directory``."""

    def __init__(self, directory: str | Path = config.CACHE_DIR) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class BoardCache:
    """Debounced mirror of a board store into durable storage.

    Each ``schedule`` call cancels the pending write and re-arms the timer,
    so a burst of calls inside the debounce window produces one write of
    the last store scheduled.
    """

    def __init__(
        self,
        storage: DurableStorage,
        debounce: float = config.CACHE_DEBOUNCE_SECONDS,
        max_age: float = config.CACHE_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.debounce = debounce
        self.max_age = max_age
        self.clock = clock
        self._handle: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[Tuple[str, BoardStore]] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def schedule(self, board_id: str, store: BoardStore) -> None:
        """Arm (or re-arm) the debounced write. Must run inside an event loop."""
        if self._handle is not None:
            self._handle.cancel()
        self._pending = (board_id, store)
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.debounce, self.flush)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._pending = None

    def flush(self) -> None:
        """Write the pending store now, if any."""
        pending = self._pending
        self.cancel()
        if pending is None:
            return
        board_id, store = pending
        self.write(board_id, store)

    def write(self, board_id: str, store: BoardStore) -> None:
        record = store.to_persisted()
        record["timestamp"] = int(self.clock() * 1000)
        try:
            self.storage.set(cache_key(board_id), json.dumps(record))
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to write board cache for %s: %s", board_id, exc)
            return
        logger.debug("Cached board %s", board_id)

    def load(self, board_id: str) -> Optional[BoardStore]:
        """Return the cached store, or None if absent, unreadable or expired."""
        key = cache_key(board_id)
        try:
            raw = self.storage.get(key)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to read board cache for %s: %s", board_id, exc)
            self.clear(board_id)
            return None
        if raw is None:
            return None
        try:
            record: Dict[str, Any] = json.loads(raw)
            age = self.clock() - record["timestamp"] / 1000
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable board cache for %s", board_id)
            self.clear(board_id)
            return None
        if age > self.max_age:
            logger.debug("Purging expired board cache for %s", board_id)
            self.clear(board_id)
            return None
        if not isinstance(record.get("cards"), dict) or not isinstance(record.get("lists"), list):
            logger.warning("Discarding malformed board cache for %s", board_id)
            self.clear(board_id)
            return None
        try:
            return BoardStore.from_persisted(record)
        except (StoreInvariantError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Discarding inconsistent board cache for %s: %s", board_id, exc)
            self.clear(board_id)
            return None

    def clear(self, board_id: str) -> None:
        try:
            self.storage.delete(cache_key(board_id))
        except OSError as exc:
            logger.warning("Failed to clear board cache for %s: %s", board_id, exc)
