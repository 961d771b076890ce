"""Start-up consistency checks for the local database."""

from __future__ import annotations

import logging

from sqlalchemy import text


logger = logging.getLogger("todolist.store")


def repair_sync_status(conn) -> int:
    """Restore the one status row per task pairing; returns rows touched.

    SQLite does not enforce the foreign key unless asked to, so a database
    copied or edited by hand can hold statuses without tasks and tasks
    without statuses. A task missing its status is treated as unsynced.
    """
    removed = conn.execute(
        text(
            """
            DELETE FROM sync_status
            WHERE task_id NOT IN (SELECT id FROM tasks)
            """
        )
    ).rowcount
    added = conn.execute(
        text(
            """
            INSERT INTO sync_status (task_id, synced)
            SELECT id, 0 FROM tasks
            WHERE id NOT IN (SELECT task_id FROM sync_status)
            """
        )
    ).rowcount
    if removed or added:
        logger.warning(
            "Repaired sync status: %d orphan rows removed, %d tasks marked unsynced",
            removed,
            added,
        )
    return (removed or 0) + (added or 0)


def run_all(engine) -> None:
    with engine.begin() as conn:
        repair_sync_status(conn)


__all__ = ["repair_sync_status", "run_all"]
