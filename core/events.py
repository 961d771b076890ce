"""Typed event bus used to notify the presentation layer of changes."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Type, TypeVar


logger = logging.getLogger("todolist.events")


@dataclass(frozen=True)
class DataRefreshed:
    """The local item list changed and readers should reload it."""

    reason: str = ""


SYNC_IDLE = "idle"
SYNC_SYNCING = "syncing"
SYNC_COMPLETED = "completed"
SYNC_FAILED = "failed"


@dataclass(frozen=True)
class SyncStatusChanged:
    status: str
    synced_count: int = 0
    error: Optional[BaseException] = None

    @classmethod
    def idle(cls) -> "SyncStatusChanged":
        return cls(SYNC_IDLE)

    @classmethod
    def syncing(cls) -> "SyncStatusChanged":
        return cls(SYNC_SYNCING)

    @classmethod
    def completed(cls, count: int) -> "SyncStatusChanged":
        return cls(SYNC_COMPLETED, synced_count=count)

    @classmethod
    def failed(cls, error: BaseException) -> "SyncStatusChanged":
        return cls(SYNC_FAILED, error=error)


@dataclass(frozen=True)
class AccountChanged:
    new_identity: str
    previous_identity: Optional[str] = None


@dataclass(frozen=True)
class RemoteUnavailable:
    reason: str = ""


E = TypeVar("E")
Listener = Callable[[E], None]


class EventBus:
    """Observer registry keyed by event class.

    Every listener registered when ``emit`` starts receives the event, even
    if another listener raises.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: Dict[type, List[Callable]] = {}

    def subscribe(self, event_type: Type[E], callback: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.setdefault(event_type, []).append(callback)

        def _unsubscribe() -> None:
            self.unsubscribe(event_type, callback)

        return _unsubscribe

    def unsubscribe(self, event_type: type, callback: Callable) -> None:
        with self._lock:
            listeners = self._listeners.get(event_type)
            if not listeners:
                return
            try:
                listeners.remove(callback)
            except ValueError:
                pass

    def emit(self, event: object) -> int:
        with self._lock:
            listeners = list(self._listeners.get(type(event), []))
        delivered = 0
        for listener in listeners:
            try:
                listener(event)
                delivered += 1
            except Exception:
                logger.exception("Listener %r failed for %s", listener, type(event).__name__)
        return delivered


__all__ = [
    "AccountChanged",
    "DataRefreshed",
    "EventBus",
    "RemoteUnavailable",
    "SYNC_COMPLETED",
    "SYNC_FAILED",
    "SYNC_IDLE",
    "SYNC_SYNCING",
    "SyncStatusChanged",
]
