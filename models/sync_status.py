"""Per-item synchronisation state."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class SyncStatus(SQLModel, table=True):
    """One row per local task; removed together with its task."""

    __tablename__ = "sync_status"

    task_id: uuid.UUID = Field(primary_key=True, foreign_key="tasks.id")
    synced: bool = Field(default=False, index=True)
    last_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None


__all__ = ["SyncStatus"]
