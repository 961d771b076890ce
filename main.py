# todolist/main.py
import argparse
import os
import sys
from datetime import date

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.errors import PartialSyncError
from core.priorities import priority_label
from datetime_utils import to_rfc3339_utc
from services.engine import build_engine
from storage.config import update_config


def _cmd_list(engine, _args) -> int:
    items = engine.coordinator.fetch()
    if not items:
        print("No tasks.")
        return 0
    for item in sorted(items, key=lambda it: (not it.pinned, -it.priority, it.created_at)):
        status = engine.store.get_sync_status(item.id)
        mark = "*" if item.pinned else " "
        synced = "synced" if status and status.synced else "unsynced"
        print(f"{mark} {item.id}  [{priority_label(item.priority):6}] {item.title}  ({item.status.value}, {synced})")
    return 0


def _cmd_sync(engine, _args) -> int:
    try:
        count = engine.coordinator.perform_sync()
    except PartialSyncError as exc:
        print(f"Sync failed for {len(exc.failures)} items ({exc.synced_count} synced).")
        return 1
    print(f"Synced {count} items.")
    return 0


def _cmd_status(engine, _args) -> int:
    report = engine.coordinator.status()
    session = report.session
    print(f"Last sync:       {to_rfc3339_utc(report.last_sync_time) or 'never'}")
    print(f"Unsynced items:  {report.unsynced_count}")
    print(f"Pending deletes: {report.pending_deletes}")
    if session is not None:
        print(f"Account:         {session.identity or 'signed out'}")
        print(f"Remote disabled: {session.remote_disabled}")
    return 0


def _cmd_days(engine, args) -> int:
    days = engine.completed_days
    if args.mark is not None:
        days.mark(args.mark or None)
    if args.unmark is not None:
        days.unmark(args.unmark)
    today = date.today()
    year, month = args.month or (today.year, today.month)
    marked = days.days(year, month)
    print(f"Completed days in {year:04d}-{month:02d}: {len(marked)}")
    for day in marked:
        print(f"  {day.isoformat()}")
    print(f"Completion rate: {days.completion_rate(year, month):.0%}")
    print(f"Current streak:  {days.current_streak()}")
    print(f"Today:           {'done' if days.is_completed() else 'open'}")
    return 0


def _cmd_config(args) -> int:
    changes = {}
    if args.remote is not None:
        changes["remote_enabled"] = args.remote == "on"
    if args.workers is not None:
        changes["worker_pool_size"] = args.workers
    if args.timeout is not None:
        changes["call_timeout_sec"] = args.timeout
    cfg = update_config(**changes)
    print(f"remote_enabled:   {cfg.remote_enabled}")
    print(f"worker_pool_size: {cfg.worker_pool_size or 'default'}")
    print(f"call_timeout_sec: {cfg.call_timeout_sec or 'default'}")
    return 0


def _month(value: str):
    year, _, month = value.partition("-")
    try:
        parsed = (int(year), int(month))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM, got {value!r}")
    if not 1 <= parsed[1] <= 12:
        raise argparse.ArgumentTypeError(f"month out of range: {value!r}")
    return parsed


def _day(value: str):
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="todolist", description="ToDoList sync engine")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="print local tasks and pull remote changes")
    sub.add_parser("sync", help="push unsynced tasks now")
    sub.add_parser("status", help="show sync state")
    days = sub.add_parser("days", help="show or change completed days")
    days.add_argument("--mark", nargs="?", const="", type=_day, metavar="YYYY-MM-DD",
                      help="mark a day (today by default) as completed")
    days.add_argument("--unmark", type=_day, metavar="YYYY-MM-DD")
    days.add_argument("--month", type=_month, metavar="YYYY-MM")
    config = sub.add_parser("config", help="show or change config.json")
    config.add_argument("--remote", choices=("on", "off"))
    config.add_argument("--workers", type=int)
    config.add_argument("--timeout", type=float)
    args = parser.parse_args(argv)

    if args.command == "config":
        return _cmd_config(args)

    engine = build_engine()
    try:
        handler = {
            "list": _cmd_list,
            "sync": _cmd_sync,
            "status": _cmd_status,
            "days": _cmd_days,
        }[args.command]
        return handler(engine, args)
    finally:
        engine.close()


if __name__ == "__main__":
    sys.exit(main())
