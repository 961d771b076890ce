"""Days the user marked as completed, with month and streak summaries.

The set belongs to the signed-in account like the task items do: it lives in
the local store and is cleared by the same account reset.
"""
from __future__ import annotations

import calendar
import logging
from datetime import date, timedelta
from typing import Callable, List, Optional

from core.events import DataRefreshed, EventBus
from storage.local_store import LocalStore


logger = logging.getLogger("todolist.days")


class CompletedDays:
    def __init__(self, store: LocalStore, bus: EventBus, *, today: Callable[[], date] = date.today):
        self._store = store
        self._bus = bus
        self._today = today

    def mark(self, day: Optional[date] = None) -> bool:
        return self._set(day or self._today(), True)

    def unmark(self, day: date) -> bool:
        return self._set(day, False)

    def _set(self, day: date, completed: bool) -> bool:
        changed = self._store.set_day_completed(day, completed)
        if changed:
            logger.info("%s %s as completed", "Marked" if completed else "Unmarked", day.isoformat())
            self._bus.emit(DataRefreshed("completed days"))
        return changed

    def is_completed(self, day: Optional[date] = None) -> bool:
        return (day or self._today()) in set(self._store.completed_days())

    def days(self, year: Optional[int] = None, month: Optional[int] = None) -> List[date]:
        found = self._store.completed_days()
        if year is not None:
            found = [d for d in found if d.year == year]
        if month is not None:
            found = [d for d in found if d.month == month]
        return found

    def completion_rate(self, year: int, month: int) -> float:
        total = calendar.monthrange(year, month)[1]
        return len(self.days(year, month)) / total

    def current_streak(self) -> int:
        """Consecutive completed days ending today; 0 when today is not completed."""
        marked = set(self._store.completed_days())
        day = self._today()
        streak = 0
        while day in marked:
            streak += 1
            day -= timedelta(days=1)
        return streak


__all__ = ["CompletedDays"]
