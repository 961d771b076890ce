"""Composition root: builds and wires the sync engine's components."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from core.events import AccountChanged, EventBus, SyncStatusChanged
from core.logging_setup import ensure_logging
from core.settings import DB_PATH, REMOTE_SYNC, SNAPSHOT
from services.account_reactor import AccountChangeReactor
from services.completed_days import CompletedDays
from services.drive_records import DriveRecordService
from services.google_auth import GoogleAuth
from services.remote_store import RemoteStoreClient
from services.session_auth import SessionAuthenticator
from services.sync_coordinator import SyncCoordinator
from services.today_snapshot import TodaySnapshotWriter
from storage.config import AppConfig, load_config
from storage.db import create_db_engine, init_db, session_factory
from storage.local_store import LocalStore


logger = logging.getLogger("todolist.engine")


@dataclass
class SyncEngine:
    bus: EventBus
    store: LocalStore
    authenticator: SessionAuthenticator
    remote: RemoteStoreClient
    coordinator: SyncCoordinator
    reactor: AccountChangeReactor
    completed_days: CompletedDays
    snapshot: Optional[TodaySnapshotWriter]
    db_engine: Any

    def close(self) -> None:
        self.coordinator.close()
        self.reactor.close()
        if self.snapshot is not None:
            self.snapshot.detach()
        self.authenticator.close()
        self.db_engine.dispose()
        logger.info("Sync engine closed")


def build_engine(
    *,
    db_path: Optional[Path] = None,
    provider: Any = None,
    records: Any = None,
    config: Optional[AppConfig] = None,
    snapshot_path: Optional[Path] = None,
    backup: bool = True,
    db_engine: Any = None,
    bus: Optional[EventBus] = None,
) -> SyncEngine:
    """Create every component with the process-wide settings.

    ``provider`` defaults to :class:`GoogleAuth` and ``records`` to a Drive
    record service over it; tests pass in-memory stand-ins for both. Pass
    ``bus`` to subscribe before the engine announces its initial idle state.
    """

    ensure_logging()
    cfg = config or load_config()
    path = Path(db_path or DB_PATH)
    if db_engine is None:
        db_engine = create_db_engine(path)
    init_db(db_engine, db_path=path, backup=backup)

    bus = bus or EventBus()
    store = LocalStore(session_factory(db_engine))
    provider = provider or GoogleAuth()
    records = records or DriveRecordService(provider)
    call_timeout = cfg.call_timeout_sec or REMOTE_SYNC.call_timeout_sec

    authenticator = SessionAuthenticator(
        provider,
        store,
        bus,
        enabled=REMOTE_SYNC.enabled and cfg.remote_enabled,
    )
    remote = RemoteStoreClient(records, authenticator, timeout=call_timeout)
    coordinator = SyncCoordinator(
        store,
        remote,
        authenticator,
        bus,
        workers=cfg.worker_pool_size or REMOTE_SYNC.worker_pool_size,
        call_timeout=call_timeout,
    )
    if hasattr(records, "reset"):
        # Must run before the reactor starts pulling for the new account.
        bus.subscribe(AccountChanged, lambda _event: records.reset())
    reactor = AccountChangeReactor(bus, store, coordinator, authenticator)
    completed_days = CompletedDays(store, bus)

    snapshot = None
    if SNAPSHOT.enabled:
        snapshot = TodaySnapshotWriter(store, snapshot_path or SNAPSHOT.path).attach(bus)

    logger.info("Sync engine ready (db=%s, remote=%s)", path, not authenticator.remote_disabled)
    bus.emit(SyncStatusChanged.idle())
    return SyncEngine(
        bus=bus,
        store=store,
        authenticator=authenticator,
        remote=remote,
        coordinator=coordinator,
        reactor=reactor,
        completed_days=completed_days,
        snapshot=snapshot,
        db_engine=db_engine,
    )


__all__ = ["SyncEngine", "build_engine"]
