# todolist/models/completed_day.py
from __future__ import annotations

from datetime import date, datetime

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class CompletedDay(SQLModel, table=True):
    __tablename__ = "completed_days"

    day: date = Field(primary_key=True)
    marked_at: datetime = Field(default_factory=utc_now)


__all__ = ["CompletedDay"]
