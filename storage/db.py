# todolist/storage/db.py
from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from core.settings import BACKUP, DB_PATH
from storage.backup import ensure_daily_backup

# Ensure SQLModel metadata is populated
import models  # noqa: F401
from storage import migrations

def _configure_sqlite(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=FULL")
    finally:
        cursor.close()

def create_db_engine(path: Optional[Path | str] = None) -> Engine:
    db_path = Path(path or DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(
        f"sqlite:///{db_path.as_posix()}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _configure_sqlite)
    return engine

def init_db(engine: Engine, *, db_path: Optional[Path] = None, backup: bool = True) -> None:
    if backup and BACKUP.enabled and db_path is not None:
        ensure_daily_backup(engine, db_path, BACKUP.directory, keep_days=BACKUP.keep_days)
    SQLModel.metadata.create_all(engine)
    migrations.run_all(engine)

def session_factory(engine: Engine) -> Callable[[], Session]:
    def factory() -> Session:
        return Session(engine, expire_on_commit=False)

    return factory


__all__ = ["create_db_engine", "init_db", "session_factory"]
