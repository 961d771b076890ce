"""Authenticated CRUD over the remote record service; never raises to callers."""
from __future__ import annotations

import logging
import uuid
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Tuple

from core.errors import (
    AuthExpired,
    RecordNotFound,
    RemoteError,
    classify_remote_error,
)
from core.settings import REMOTE_SYNC
from models import TaskItem, copy_item
from services.drive_records import item_to_record, record_to_item


logger = logging.getLogger("todolist.remote")


SYNCED = "synced"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass(frozen=True)
class RemoteResult:
    """Outcome of one remote call.

    ``skipped`` means the remote was not usable and nothing was sent; the
    item stays unsynced without counting as a failure.
    """

    outcome: str
    item: Optional[TaskItem] = None
    items: Tuple[TaskItem, ...] = ()
    error: Optional[RemoteError] = None

    @property
    def ok(self) -> bool:
        return self.outcome == SYNCED

    @property
    def retryable(self) -> bool:
        if self.error is not None:
            return self.error.retryable
        return self.outcome == SKIPPED


class RecordService(Protocol):
    def find(self, record_id: uuid.UUID) -> Optional[dict]: ...

    def put(self, record: dict, *, file_id: Optional[str] = None) -> str: ...

    def delete(self, record_id: uuid.UUID) -> bool: ...

    def query(self, owner_id: str) -> list: ...


class RemoteStoreClient:
    def __init__(
        self,
        records: RecordService,
        authenticator: Any,
        *,
        timeout: float = REMOTE_SYNC.call_timeout_sec,
        unknown_owner: str = REMOTE_SYNC.unknown_owner,
    ):
        self._records = records
        self._auth = authenticator
        self._timeout = timeout
        self._unknown_owner = unknown_owner

    # ----- operations -----
    def save(self, item: TaskItem) -> RemoteResult:
        if not self._authorized():
            return RemoteResult(SKIPPED, item=item)
        record_item = self._owned_copy(item)
        if record_item is None:
            return RemoteResult(SKIPPED, item=item)
        try:
            meta = self._records.find(item.id)
            self._records.put(item_to_record(record_item), file_id=meta.get("id") if meta else None)
        except Exception as exc:
            return self._failure("save", item, exc)
        logger.debug("Saved %s", item.id)
        return RemoteResult(SYNCED, item=record_item)

    def update(self, item: TaskItem) -> RemoteResult:
        if not self._authorized():
            return RemoteResult(SKIPPED, item=item)
        record_item = self._owned_copy(item)
        if record_item is None:
            return RemoteResult(SKIPPED, item=item)
        try:
            meta = self._records.find(item.id)
            if meta is None:
                logger.info("Update of %s skipped: no remote record", item.id)
                return RemoteResult(SYNCED, item=item)
            self._records.put(item_to_record(record_item), file_id=meta.get("id"))
        except Exception as exc:
            return self._failure("update", item, exc)
        return RemoteResult(SYNCED, item=record_item)

    def delete(self, item_id: uuid.UUID) -> RemoteResult:
        if not self._authorized():
            return RemoteResult(SKIPPED)
        try:
            removed = self._records.delete(item_id)
        except Exception as exc:
            if isinstance(classify_remote_error(exc), RecordNotFound):
                removed = False
            else:
                return self._failure("delete", None, exc, item_id=item_id)
        if not removed:
            logger.debug("Delete of %s: already gone", item_id)
        return RemoteResult(SYNCED)

    def fetch_all(self, owner_id: Optional[str]) -> RemoteResult:
        if not self._authorized():
            return RemoteResult(SKIPPED)
        identity = self._auth.identity
        if not owner_id or owner_id != identity:
            logger.warning("Refusing to fetch records of %s while %s is active", owner_id, identity)
            return RemoteResult(SYNCED)
        try:
            raw = self._records.query(owner_id)
        except Exception as exc:
            return self._failure("fetch", None, exc)
        items = []
        for data in raw:
            try:
                item = record_to_item(data)
            except ValueError as exc:
                logger.warning("Skipping malformed remote record: %s", exc)
                continue
            if item.owner_id == owner_id:
                items.append(item)
        items.sort(key=lambda it: it.created_at, reverse=True)
        return RemoteResult(SYNCED, items=tuple(items))

    # ----- helpers -----
    def _authorized(self) -> bool:
        try:
            return bool(self._auth.ensure_authenticated().result(timeout=self._timeout))
        except FutureTimeout:
            logger.warning("Authentication did not finish within %.0fs", self._timeout)
            return False

    def _owned_copy(self, item: TaskItem) -> Optional[TaskItem]:
        identity = self._auth.identity
        if not identity:
            return None
        if item.owner_id not in ("", identity, self._unknown_owner):
            # Written under a previous account; it must not reach this one.
            logger.warning("Not pushing %s owned by %s to %s", item.id, item.owner_id, identity)
            return None
        return copy_item(item, owner_id=identity)

    def _failure(
        self,
        operation: str,
        item: Optional[TaskItem],
        exc: BaseException,
        *,
        item_id: Optional[uuid.UUID] = None,
    ) -> RemoteResult:
        error = classify_remote_error(exc)
        target = item.id if item is not None else item_id
        if isinstance(error, AuthExpired):
            self._auth.refresh_authentication()
        if error.retryable:
            logger.warning("Remote %s of %s failed, will retry: %s", operation, target, error)
        else:
            logger.error("Remote %s of %s failed: %s", operation, target, error)
        return RemoteResult(FAILED, item=item, error=error)


__all__ = ["FAILED", "RemoteResult", "RemoteStoreClient", "SKIPPED", "SYNCED"]
