"""Daily online backups of the local SQLite database."""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from pathlib import Path

from sqlalchemy.engine import Engine


logger = logging.getLogger("todolist.backup")


def _parse_backup_date(path: Path, prefix: str) -> datetime | None:
    stem = path.stem
    if not stem.startswith(prefix):
        return None
    try:
        return datetime.strptime(stem[len(prefix) :], "%Y-%m-%d")
    except ValueError:
        return None


def _copy_online(engine: Engine, destination: Path) -> None:
    # sqlite3's backup API copies a consistent snapshot even while the
    # database is open in WAL mode, unlike a plain file copy.
    raw = engine.raw_connection()
    try:
        source = raw.driver_connection
        target = sqlite3.connect(str(destination))
        try:
            source.backup(target)
        finally:
            target.close()
    finally:
        raw.close()


def ensure_daily_backup(
    engine: Engine,
    db_path: str | Path,
    backup_dir: str | Path,
    *,
    keep_days: int = 7,
) -> Path | None:
    """Snapshot the database once per day and drop copies older than ``keep_days``."""

    db_file = Path(db_path)
    if not db_file.exists():
        return None

    backups = Path(backup_dir)
    backups.mkdir(parents=True, exist_ok=True)

    today = datetime.now().date()
    prefix = f"{db_file.stem}_"
    destination = backups / f"{prefix}{today.isoformat()}{db_file.suffix}"

    created: Path | None = None
    if not destination.exists():
        _copy_online(engine, destination)
        created = destination
        logger.info("Database backup written to %s", destination)

    if keep_days > 0:
        cutoff = today - timedelta(days=keep_days - 1)
        for file in backups.glob(f"{prefix}*{db_file.suffix}"):
            stamp = _parse_backup_date(file, prefix)
            if stamp and stamp.date() < cutoff:
                try:
                    file.unlink()
                except OSError as exc:
                    logger.warning("Could not remove old backup %s: %s", file, exc)

    return created


__all__ = ["ensure_daily_backup"]
