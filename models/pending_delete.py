"""SQLModel table for remote deletes that still have to be sent."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class PendingDelete(SQLModel, table=True):
    __tablename__ = "pending_delete"

    task_id: uuid.UUID = Field(primary_key=True)
    attempts: int = Field(default=0)
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


__all__ = ["PendingDelete"]
