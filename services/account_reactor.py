"""Resets local state when the signed-in account changes or goes away."""
from __future__ import annotations

import logging
from typing import Any, Callable, List

from core.events import AccountChanged, DataRefreshed, EventBus, RemoteUnavailable
from storage.local_store import LocalStore


logger = logging.getLogger("todolist.account")


class AccountChangeReactor:
    def __init__(self, bus: EventBus, store: LocalStore, coordinator: Any, authenticator: Any):
        self._bus = bus
        self._store = store
        self._coordinator = coordinator
        self._auth = authenticator
        self._unsubscribers: List[Callable[[], None]] = [
            bus.subscribe(AccountChanged, self.on_account_changed),
            bus.subscribe(RemoteUnavailable, self.on_remote_unavailable),
        ]

    def on_account_changed(self, event: AccountChanged) -> None:
        logger.info(
            "Account changed from %s to %s; clearing local data",
            event.previous_identity,
            event.new_identity,
        )
        self._reset("account changed")
        self._auth.clear_remote_disabled()
        self._coordinator.reconcile_in_background()

    def on_remote_unavailable(self, event: RemoteUnavailable) -> None:
        logger.info("Remote unavailable (%s); clearing local data", event.reason or "no reason")
        self._reset("remote unavailable")

    def _reset(self, reason: str) -> None:
        self._coordinator.forget_revisions()
        self._store.clear_all()
        remaining = self._store.get_all()
        if remaining:
            logger.error("Local store still holds %d items after clear", len(remaining))
        self._bus.emit(DataRefreshed(reason))

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()


__all__ = ["AccountChangeReactor"]
