"""Scalar values persisted next to the task tables."""
from __future__ import annotations

from typing import Optional

from sqlmodel import Field, SQLModel


LAST_SYNC_TIME = "lastSyncTime"
CURRENT_IDENTITY = "currentIdentity"


class SyncMeta(SQLModel, table=True):
    __tablename__ = "sync_meta"

    key: str = Field(primary_key=True)
    value: Optional[str] = None


__all__ = ["CURRENT_IDENTITY", "LAST_SYNC_TIME", "SyncMeta"]
