"""ORM models exposed by the sync engine."""
from .completed_day import CompletedDay
from .pending_delete import PendingDelete
from .sync_meta import CURRENT_IDENTITY, LAST_SYNC_TIME, SyncMeta
from .sync_status import SyncStatus
from .task_item import TASK_FIELDS, TaskItem, TodoStatus, copy_item

__all__ = [
    "CompletedDay",
    "CURRENT_IDENTITY",
    "LAST_SYNC_TIME",
    "PendingDelete",
    "SyncMeta",
    "SyncStatus",
    "TASK_FIELDS",
    "TaskItem",
    "TodoStatus",
    "copy_item",
]
