"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``.

    ``TODOLIST_DATA_DIR`` wins over every platform default.
    """

    platform_id = (platform or sys.platform).lower()
    environ = dict(os.environ if env is None else env)
    home_dir = Path(home or Path.home())

    override = environ.get("TODOLIST_DATA_DIR")
    if override:
        return Path(override).expanduser()

    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = home_dir / "Library" / "Application Support"
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return base.expanduser() / sanitized


APP_NAME = "ToDoList"


DATA_DIR = get_default_data_dir(APP_NAME)
SECRETS_DIR = DATA_DIR / "secrets"
BACKUP_DIR = DATA_DIR / "backups"
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, SECRETS_DIR, BACKUP_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "todolist.db"
CONFIG_PATH = DATA_DIR / "config.json"
TOKEN_PATH = SECRETS_DIR / "token.json"
CLIENT_SECRET_PATH = SECRETS_DIR / "client_secret.json"
LOG_PATH = LOG_DIR / "sync.log"
SNAPSHOT_PATH = DATA_DIR / "today_tasks.json"


@dataclass(frozen=True)
class RemoteSyncSettings:
    enabled: bool = True
    scopes: tuple[str, ...] = (
        "https://www.googleapis.com/auth/drive.appdata",
    )
    record_type: str = "TodoItem"
    unknown_owner: str = "unknown_user"
    worker_pool_size: int = 4
    call_timeout_sec: float = 30.0
    auth_failure_threshold: int = 2
    reset_delay_sec: float = 5.0
    reset_delay_max_sec: float = 300.0
    allow_interactive_consent: bool = True


REMOTE_SYNC = RemoteSyncSettings()


@dataclass(frozen=True)
class BackupSettings:
    enabled: bool = True
    directory: Path = BACKUP_DIR
    keep_days: int = 7


BACKUP = BackupSettings()


@dataclass(frozen=True)
class LoggingSettings:
    path: Path = LOG_PATH
    max_bytes: int = 1_000_000
    backup_count: int = 3
    level: str = "INFO"


LOGGING = LoggingSettings()


@dataclass(frozen=True)
class SnapshotSettings:
    enabled: bool = True
    path: Path = SNAPSHOT_PATH


SNAPSHOT = SnapshotSettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "SECRETS_DIR",
    "BACKUP_DIR",
    "LOG_DIR",
    "DB_PATH",
    "CONFIG_PATH",
    "TOKEN_PATH",
    "CLIENT_SECRET_PATH",
    "LOG_PATH",
    "SNAPSHOT_PATH",
    "REMOTE_SYNC",
    "BACKUP",
    "LOGGING",
    "SNAPSHOT",
    "RemoteSyncSettings",
    "get_default_data_dir",
]
