"""Durable on-device store for task items and their sync state."""
from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, Iterable, Iterator, List, Optional

from sqlalchemy import delete as sa_delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.errors import LocalIOError
from datetime_utils import ensure_utc, parse_rfc3339, to_rfc3339_utc, utc_now
from models import (
    CURRENT_IDENTITY,
    LAST_SYNC_TIME,
    TASK_FIELDS,
    CompletedDay,
    PendingDelete,
    SyncMeta,
    SyncStatus,
    TaskItem,
    TodoStatus,
    copy_item,
)


logger = logging.getLogger("todolist.store")


def _status_copy(row: SyncStatus) -> SyncStatus:
    return SyncStatus(
        task_id=row.task_id,
        synced=row.synced,
        last_attempt_at=ensure_utc(row.last_attempt_at),
        last_error=row.last_error,
    )


def _content(item: TaskItem) -> dict:
    values = {name: getattr(item, name) for name in TASK_FIELDS}
    for name in ("due_at", "created_at", "updated_at"):
        values[name] = ensure_utc(values[name])
    values["status"] = TodoStatus(values["status"])
    return values


class LocalStore:
    """SQLModel-backed store; the source of truth for every UI read.

    Mutations are serialised by one re-entrant lock and each one commits its
    own transaction before returning, so a call that returned is durable and
    the task/status pair never disagrees.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self._lock = threading.RLock()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Local store failure: %s", exc)
            raise LocalIOError(str(exc)) from exc

    # ----- items -----
    def get_all(self) -> List[TaskItem]:
        with self._session() as session:
            rows = session.exec(select(TaskItem).order_by(TaskItem.id)).all()
            return [copy_item(row) for row in rows]

    def get(self, item_id: uuid.UUID) -> Optional[TaskItem]:
        with self._session() as session:
            row = session.get(TaskItem, item_id)
            return copy_item(row) if row else None

    def upsert(self, item: TaskItem) -> TaskItem:
        with self._lock, self._session() as session:
            row = session.get(TaskItem, item.id)
            if row is None:
                row = copy_item(item)
                logger.debug("Inserting task %s", item.id)
            else:
                for name in TASK_FIELDS:
                    if name != "id":
                        setattr(row, name, getattr(item, name))
            session.add(row)
            status = session.get(SyncStatus, item.id) or SyncStatus(task_id=item.id)
            status.synced = False
            status.last_error = None
            session.add(status)
            tombstone = session.get(PendingDelete, item.id)
            if tombstone is not None:
                session.delete(tombstone)
            session.commit()
            return copy_item(row)

    def delete(self, item_id: uuid.UUID, *, remember_remote: bool = False) -> bool:
        """Remove the item and its status; optionally queue the remote delete.

        Returns ``True`` when a local row was removed.
        """
        with self._lock, self._session() as session:
            status = session.get(SyncStatus, item_id)
            if status is not None:
                session.delete(status)
            row = session.get(TaskItem, item_id)
            if row is not None:
                session.delete(row)
            if remember_remote and session.get(PendingDelete, item_id) is None:
                session.add(PendingDelete(task_id=item_id))
            session.commit()
            return row is not None

    def merge_remote(
        self, items: Iterable[TaskItem], *, owner_id: Optional[str] = None
    ) -> List[TaskItem]:
        """Fold remote records into the store and return those that changed.

        New records are inserted as synced. An existing record is replaced
        only while its local copy is synced; unsynced local edits win. Records
        waiting for a remote delete are never brought back.
        """
        changed: List[TaskItem] = []
        with self._lock, self._session() as session:
            tombstones = set(session.exec(select(PendingDelete.task_id)).all())
            for remote in items:
                if owner_id is not None and remote.owner_id != owner_id:
                    continue
                if remote.id in tombstones:
                    continue
                row = session.get(TaskItem, remote.id)
                status = session.get(SyncStatus, remote.id)
                if row is None:
                    session.add(copy_item(remote))
                elif status is not None and not status.synced:
                    continue
                elif _content(row) == _content(remote):
                    continue
                else:
                    for name in TASK_FIELDS:
                        if name != "id":
                            setattr(row, name, getattr(remote, name))
                    session.add(row)
                status = status or SyncStatus(task_id=remote.id)
                status.synced = True
                status.last_error = None
                status.last_attempt_at = utc_now()
                session.add(status)
                changed.append(copy_item(remote))
            session.commit()
        if changed:
            logger.info("Merged %d remote records", len(changed))
        return changed

    def clear_all(self) -> None:
        with self._lock, self._session() as session:
            session.execute(sa_delete(SyncStatus))
            session.execute(sa_delete(TaskItem))
            session.execute(sa_delete(PendingDelete))
            session.execute(sa_delete(CompletedDay))
            meta = session.get(SyncMeta, LAST_SYNC_TIME)
            if meta is not None:
                session.delete(meta)
            session.commit()
        logger.info("Local store cleared")

    # ----- sync status -----
    def get_unsynced_ids(self) -> List[uuid.UUID]:
        with self._session() as session:
            stmt = (
                select(SyncStatus.task_id)
                .where(SyncStatus.synced == False)  # noqa: E712
                .order_by(SyncStatus.task_id)
            )
            return list(session.exec(stmt).all())

    def get_sync_status(self, item_id: uuid.UUID) -> Optional[SyncStatus]:
        with self._session() as session:
            row = session.get(SyncStatus, item_id)
            return _status_copy(row) if row else None

    def set_sync_status(
        self, item_id: uuid.UUID, synced: bool, error: Optional[str] = None
    ) -> bool:
        """Record a push outcome; ignored once the item itself is gone."""
        with self._lock, self._session() as session:
            if session.get(TaskItem, item_id) is None:
                return False
            status = session.get(SyncStatus, item_id) or SyncStatus(task_id=item_id)
            status.synced = synced
            status.last_attempt_at = utc_now()
            status.last_error = None if synced else (error or None)
            session.add(status)
            session.commit()
            return True

    def count_unsynced(self) -> int:
        with self._session() as session:
            stmt = select(func.count()).select_from(SyncStatus).where(
                SyncStatus.synced == False  # noqa: E712
            )
            return int(session.exec(stmt).one())

    # ----- pending remote deletes -----
    def pending_delete_ids(self) -> List[uuid.UUID]:
        with self._session() as session:
            stmt = select(PendingDelete.task_id).order_by(PendingDelete.created_at)
            return list(session.exec(stmt).all())

    def remove_pending_delete(self, item_id: uuid.UUID) -> None:
        with self._lock, self._session() as session:
            row = session.get(PendingDelete, item_id)
            if row is not None:
                session.delete(row)
                session.commit()

    def record_delete_failure(self, item_id: uuid.UUID, error: str) -> None:
        with self._lock, self._session() as session:
            row = session.get(PendingDelete, item_id)
            if row is None:
                return
            row.attempts += 1
            row.last_error = error[:1000]
            session.add(row)
            session.commit()

    # ----- completed days -----
    def completed_days(self) -> List[date]:
        with self._session() as session:
            return list(session.exec(select(CompletedDay.day).order_by(CompletedDay.day)).all())

    def set_day_completed(self, day: date, completed: bool = True) -> bool:
        """Mark or unmark ``day``; returns ``True`` when the stored set changed."""
        with self._lock, self._session() as session:
            row = session.get(CompletedDay, day)
            if completed == (row is not None):
                return False
            if completed:
                session.add(CompletedDay(day=day))
            else:
                session.delete(row)
            session.commit()
            return True

    # ----- scalar keys -----
    def _get_meta(self, key: str) -> Optional[str]:
        with self._session() as session:
            row = session.get(SyncMeta, key)
            return row.value if row else None

    def _set_meta(self, key: str, value: Optional[str]) -> None:
        with self._lock, self._session() as session:
            row = session.get(SyncMeta, key)
            if value is None:
                if row is not None:
                    session.delete(row)
                    session.commit()
                return
            row = row or SyncMeta(key=key)
            row.value = value
            session.add(row)
            session.commit()

    @property
    def last_sync_time(self) -> Optional[datetime]:
        return parse_rfc3339(self._get_meta(LAST_SYNC_TIME))

    def mark_synced_now(self, moment: Optional[datetime] = None) -> datetime:
        value = ensure_utc(moment) or utc_now()
        self._set_meta(LAST_SYNC_TIME, to_rfc3339_utc(value))
        return value

    @property
    def current_identity(self) -> Optional[str]:
        return self._get_meta(CURRENT_IDENTITY)

    def set_current_identity(self, identity: Optional[str]) -> None:
        self._set_meta(CURRENT_IDENTITY, identity or None)


__all__ = ["LocalStore"]
