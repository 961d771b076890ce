"""Writes today's tasks to a JSON file for out-of-process readers (widgets)."""
from __future__ import annotations

import json
import logging
import os
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional

from core.events import DataRefreshed, EventBus
from datetime_utils import same_local_day, to_rfc3339_utc, utc_now
from models import TaskItem, TodoStatus
from services.drive_records import item_to_record
from storage.local_store import LocalStore


logger = logging.getLogger("todolist.snapshot")


def today_items(items: List[TaskItem], today: Optional[date] = None) -> List[TaskItem]:
    day = today or date.today()
    selected = [item for item in items if same_local_day(item.due_at, day)]
    selected.sort(
        key=lambda it: (
            TodoStatus(it.status) == TodoStatus.COMPLETED,
            not it.pinned,
            -int(it.priority),
            it.due_at,
        )
    )
    return selected


class TodaySnapshotWriter:
    def __init__(
        self,
        store: LocalStore,
        path: Path,
        *,
        today: Callable[[], date] = date.today,
    ):
        self._store = store
        self._path = Path(path)
        self._today = today
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self, bus: EventBus) -> "TodaySnapshotWriter":
        self._unsubscribe = bus.subscribe(DataRefreshed, self._on_refresh)
        return self

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_refresh(self, _event: DataRefreshed) -> None:
        self.write()

    def write(self) -> Path:
        items = today_items(self._store.get_all(), self._today())
        payload = {
            "generatedAt": to_rfc3339_utc(utc_now()),
            "items": [item_to_record(item) for item in items],
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self._path)
        finally:
            if tmp.exists():
                try:
                    tmp.unlink()
                except OSError:
                    pass
        logger.debug("Wrote %d items to %s", len(items), self._path)
        return self._path


__all__ = ["TodaySnapshotWriter", "today_items"]
