"""Local-first write path and push/pull reconciliation."""
from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from core.errors import NetworkUnavailable, PartialSyncError, RemoteError
from core.events import DataRefreshed, EventBus, SyncStatusChanged
from core.settings import REMOTE_SYNC
from models import TaskItem, copy_item
from services.remote_store import FAILED, SKIPPED, SYNCED, RemoteResult
from storage.local_store import LocalStore


logger = logging.getLogger("todolist.sync")


Signature = FrozenSet[Tuple[uuid.UUID, str, Optional[datetime]]]


def _signature(items: Iterable[TaskItem]) -> Signature:
    return frozenset(item.signature() for item in items)


@dataclass(frozen=True)
class SyncReport:
    last_sync_time: Optional[datetime]
    unsynced_count: int
    pending_deletes: int
    background_tasks: int
    session: Any


class SyncCoordinator:
    """Orchestrates the local store and the remote client.

    Every write lands in the local store before the call returns; remote
    pushes run on a bounded pool. Each local write bumps an in-memory
    revision for its item, and a push outcome is recorded only while the
    revision it pushed is still the latest one. A local reset starts a new
    generation; pulls and push outcomes begun in an older generation are
    dropped.
    """

    def __init__(
        self,
        store: LocalStore,
        remote: Any,
        authenticator: Any,
        bus: EventBus,
        *,
        workers: int = REMOTE_SYNC.worker_pool_size,
        call_timeout: float = REMOTE_SYNC.call_timeout_sec,
        unknown_owner: str = REMOTE_SYNC.unknown_owner,
    ):
        self._store = store
        self._remote = remote
        self._auth = authenticator
        self._bus = bus
        self._call_timeout = call_timeout
        self._unknown_owner = unknown_owner
        self._pushes = ThreadPoolExecutor(
            max_workers=max(1, workers), thread_name_prefix="todolist-push"
        )
        # Reconciliation joins on push futures, so it must not run on the push pool.
        self._control = ThreadPoolExecutor(max_workers=1, thread_name_prefix="todolist-reconcile")
        self._write_lock = threading.RLock()
        self._revisions: Dict[uuid.UUID, int] = {}
        self._generation = 0
        self._lock = threading.Lock()
        self._background: Set[Future] = set()
        self._closed = False

    # ----- write path -----
    def add(self, item: TaskItem) -> TaskItem:
        stored = self._write(item)
        self._detach(self._pushes, self._push, stored.id)
        return stored

    def update(self, item: TaskItem) -> TaskItem:
        stored = self._write(item)
        self._bus.emit(DataRefreshed("updated"))
        self._detach(self._pushes, self._push, stored.id)
        return stored

    def delete(self, item_id: uuid.UUID) -> None:
        with self._write_lock:
            self._revisions[item_id] = self._revisions.get(item_id, 0) + 1
            removed = self._store.delete(item_id, remember_remote=True)
        if removed:
            logger.info("Deleted %s locally", item_id)
        self._detach(self._pushes, self._push_delete, item_id)

    def _write(self, item: TaskItem) -> TaskItem:
        with self._write_lock:
            snapshot = copy_item(item, owner_id=self._auth.identity or self._unknown_owner)
            snapshot.touch()
            self._revisions[snapshot.id] = self._revisions.get(snapshot.id, 0) + 1
            return self._store.upsert(snapshot)

    # ----- read path -----
    def fetch(self) -> List[TaskItem]:
        items = self._store.get_all()
        self._detach(self._control, self._refresh_from_remote, _signature(items))
        return items

    def reconcile_in_background(self) -> Optional[Future]:
        current = _signature(self._store.get_all())
        return self._detach(self._control, self._refresh_from_remote, current)

    def _refresh_from_remote(self, before: Signature) -> None:
        self.reconcile()
        after = _signature(self._store.get_all())
        if after != before:
            self._bus.emit(DataRefreshed("reconciled"))

    def reconcile(self) -> List[TaskItem]:
        """Push pending local work, then merge the session owner's remote records."""

        try:
            self.perform_sync()
        except PartialSyncError as exc:
            logger.warning("Reconcile push incomplete: %s", exc)
        if not self._authorized():
            return []
        with self._write_lock:
            generation = self._generation
            identity = self._auth.identity
        result = self._remote.fetch_all(identity)
        if result.outcome != SYNCED:
            return []
        with self._write_lock:
            if generation != self._generation or identity != self._auth.identity:
                logger.info("Dropping pull for %s: local data was reset meanwhile", identity)
                return []
            return self._store.merge_remote(result.items, owner_id=identity)

    # ----- sync pass -----
    def perform_sync(self) -> int:
        unsynced = self._store.get_unsynced_ids()
        deletes = self._store.pending_delete_ids()
        if not unsynced and not deletes:
            self._bus.emit(SyncStatusChanged.idle())
            return 0

        self._bus.emit(SyncStatusChanged.syncing())
        logger.info("Sync pass: %d unsynced, %d pending deletes", len(unsynced), len(deletes))
        futures: Dict[uuid.UUID, Future] = {}
        for item_id in unsynced:
            futures[item_id] = self._pushes.submit(self._push, item_id)
        for item_id in deletes:
            if item_id not in futures:
                futures[item_id] = self._pushes.submit(self._push_delete, item_id)

        synced = 0
        failures: Dict[uuid.UUID, RemoteError] = {}
        for item_id, future in futures.items():
            try:
                result: RemoteResult = future.result(timeout=self._call_timeout)
            except FutureTimeout:
                failures[item_id] = NetworkUnavailable(
                    f"push did not finish within {self._call_timeout:.0f}s"
                )
                continue
            if result.outcome == SYNCED:
                synced += 1
            elif result.outcome == FAILED and result.error is not None:
                failures[item_id] = result.error

        self._store.mark_synced_now()
        if failures:
            error = PartialSyncError(synced, failures)
            logger.warning("Sync pass finished with failures: %s", error)
            self._bus.emit(SyncStatusChanged.failed(error))
            raise error
        logger.info("Sync pass finished: %d synced", synced)
        self._bus.emit(SyncStatusChanged.completed(synced))
        return synced

    # ----- pushes -----
    def _push(self, item_id: uuid.UUID) -> RemoteResult:
        # Authorize first so account-change handling runs before the item is read.
        if not self._authorized():
            self._record(item_id, self._revision(item_id), RemoteResult(SKIPPED))
            return RemoteResult(SKIPPED)
        with self._write_lock:
            revision = self._revision(item_id)
            item = self._store.get(item_id)
        if item is None:
            return RemoteResult(SKIPPED)
        result = self._remote.save(item)
        self._record(item_id, revision, result)
        return result

    def _push_delete(self, item_id: uuid.UUID) -> RemoteResult:
        if item_id not in self._store.pending_delete_ids():
            return RemoteResult(SYNCED)
        result = self._remote.delete(item_id)
        if result.outcome == SYNCED:
            self._store.remove_pending_delete(item_id)
            with self._write_lock:
                if self._store.get(item_id) is None:
                    self._revisions.pop(item_id, None)
        elif result.outcome == FAILED:
            self._store.record_delete_failure(item_id, str(result.error))
        return result

    def _record(self, item_id: uuid.UUID, revision: Tuple[int, int], result: RemoteResult) -> None:
        with self._write_lock:
            if self._revision(item_id) != revision:
                logger.debug("Dropping stale push outcome for %s", item_id)
                return
            if result.outcome == SYNCED:
                self._store.set_sync_status(item_id, True)
            elif result.outcome == FAILED:
                self._store.set_sync_status(item_id, False, str(result.error))
            else:
                self._store.set_sync_status(item_id, False, "remote unavailable")

    def _revision(self, item_id: uuid.UUID) -> Tuple[int, int]:
        with self._write_lock:
            return self._generation, self._revisions.get(item_id, 0)

    def _authorized(self) -> bool:
        try:
            return bool(self._auth.ensure_authenticated().result(timeout=self._call_timeout))
        except FutureTimeout:
            logger.warning("Authentication did not finish within %.0fs", self._call_timeout)
            return False

    # ----- background bookkeeping -----
    def _detach(self, pool: ThreadPoolExecutor, fn: Callable, *args) -> Optional[Future]:
        with self._lock:
            if self._closed:
                logger.debug("Coordinator closed; dropping %s", getattr(fn, "__name__", fn))
                return None
            future = pool.submit(fn, *args)
            self._background.add(future)
        future.add_done_callback(self._finished)
        return future

    def _finished(self, future: Future) -> None:
        with self._lock:
            self._background.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Background sync task failed", exc_info=exc)

    def wait_for_background(self, timeout: Optional[float] = None) -> bool:
        """Block until detached pushes and reconciles finish; ``False`` on timeout."""
        while True:
            with self._lock:
                pending = set(self._background)
            if not pending:
                return True
            _, not_done = wait(pending, timeout=timeout)
            if not_done:
                return False

    def status(self) -> SyncReport:
        with self._lock:
            background = len(self._background)
        return SyncReport(
            last_sync_time=self._store.last_sync_time,
            unsynced_count=self._store.count_unsynced(),
            pending_deletes=len(self._store.pending_delete_ids()),
            background_tasks=background,
            session=self._auth.state() if hasattr(self._auth, "state") else None,
        )

    def forget_revisions(self) -> None:
        """Start a new generation; call before the local store is cleared."""
        with self._write_lock:
            self._generation += 1
            self._revisions.clear()

    def close(self, timeout: Optional[float] = None) -> None:
        self.wait_for_background(self._call_timeout if timeout is None else timeout)
        with self._lock:
            self._closed = True
        self._control.shutdown(wait=False, cancel_futures=True)
        self._pushes.shutdown(wait=False, cancel_futures=True)


__all__ = ["SyncCoordinator", "SyncReport"]
