"""Task item table: the records shown to the user."""
from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from sqlmodel import Field, SQLModel

from core.priorities import DEFAULT_PRIORITY
from datetime_utils import ensure_utc, utc_now


class TodoStatus(str, Enum):
    """Lifecycle of a task; values double as the remote wire values."""

    QUEUED = "toDoList"
    NOT_STARTED = "toBeStarted"
    IN_PROGRESS = "undone"
    COMPLETED = "completed"

    @classmethod
    def from_wire(cls, value: Optional[str]) -> "TodoStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.QUEUED


class TaskItem(SQLModel, table=True):
    __tablename__ = "tasks"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    owner_id: str = Field(default="", index=True)
    title: str = ""
    note: str = ""
    priority: int = DEFAULT_PRIORITY
    pinned: bool = False
    due_at: Optional[datetime] = None
    status: TodoStatus = Field(default=TodoStatus.QUEUED)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    asset_id: str = ""

    def touch(self, now: Optional[datetime] = None) -> "TaskItem":
        """Stamp ``updated_at`` without letting it fall behind ``created_at``."""
        moment = ensure_utc(now) or utc_now()
        created = ensure_utc(self.created_at) or moment
        self.created_at = created
        self.updated_at = max(moment, created)
        return self

    def signature(self) -> Tuple[uuid.UUID, str, Optional[datetime]]:
        return (self.id, TodoStatus(self.status).value, ensure_utc(self.updated_at))


TASK_FIELDS = (
    "id",
    "owner_id",
    "title",
    "note",
    "priority",
    "pinned",
    "due_at",
    "status",
    "created_at",
    "updated_at",
    "asset_id",
)


def copy_item(item: TaskItem, **changes) -> TaskItem:
    """Return a detached copy of ``item``; stored timestamps come back as UTC."""

    values = {name: getattr(item, name) for name in TASK_FIELDS}
    for name in ("due_at", "created_at", "updated_at"):
        values[name] = ensure_utc(values[name])
    values["status"] = TodoStatus(values["status"])
    values.update(changes)
    return TaskItem(**values)


__all__ = ["TASK_FIELDS", "TaskItem", "TodoStatus", "copy_item"]
