"""Save-status notifications for observers such as a save indicator."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Optional, Protocol

logger = logging.getLogger(__name__)


class SaveStatusListener(Protocol):
    def save_started(self, board_id: str) -> None: ...

    def save_succeeded(self, board_id: str) -> None: ...

    def save_failed(self, board_id: str, message: str) -> None: ...


class SaveStatusBus:
    """Fan-out of save signals to subscribed listeners.

    A listener that raises is logged and skipped; the rest still hear the
    signal.
    """

    def __init__(self) -> None:
        self._listeners: List[SaveStatusListener] = []

    def subscribe(self, listener: SaveStatusListener) -> Callable[[], None]:
        """Add a listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: SaveStatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, method: str, *args: str) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, method)(*args)
            except Exception:
                logger.exception("Save-status listener %r failed on %s", listener, method)

    def save_started(self, board_id: str) -> None:
        self._emit("save_started", board_id)

    def save_succeeded(self, board_id: str) -> None:
        self._emit("save_succeeded", board_id)

    def save_failed(self, board_id: str, message: str) -> None:
        self._emit("save_failed", board_id, message)


class SaveStatus(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class SaveStatusTracker:
    """Listener that remembers the latest status, as a save indicator would render it."""

    def __init__(self) -> None:
        self.status = SaveStatus.IDLE
        self.message: Optional[str] = None
        self.history: List[SaveStatus] = []

    def _set(self, status: SaveStatus, message: Optional[str] = None) -> None:
        self.status = status
        self.message = message
        self.history.append(status)

    def save_started(self, board_id: str) -> None:
        self._set(SaveStatus.SAVING)

    def save_succeeded(self, board_id: str) -> None:
        self._set(SaveStatus.SAVED)

    def save_failed(self, board_id: str, message: str) -> None:
        self._set(SaveStatus.ERROR, message)

    def reset(self) -> None:
        self.status = SaveStatus.IDLE
        self.message = None
