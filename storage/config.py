"""User-editable JSON configuration stored next to the database."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from core.settings import CONFIG_PATH


logger = logging.getLogger("todolist.config")


@dataclass
class AppConfig:
    """Per-installation switches persisted to ``config.json``."""

    remote_enabled: bool = True
    worker_pool_size: Optional[int] = None
    call_timeout_sec: Optional[float] = None


def _load_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def load_config(path: Optional[Path] = None) -> AppConfig:
    data = _load_raw(Path(path or CONFIG_PATH))
    known = {f.name for f in fields(AppConfig)}
    return AppConfig(**{key: value for key, value in data.items() if key in known})


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    target = Path(path or CONFIG_PATH)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(asdict(config), ensure_ascii=False, indent=2, sort_keys=True)
    tmp = target.with_suffix(".tmp")
    try:
        tmp.write_text(payload, encoding="utf-8")
        os.replace(tmp, target)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass


def update_config(path: Optional[Path] = None, **changes: Any) -> AppConfig:
    cfg = load_config(path)
    for key, value in changes.items():
        if hasattr(cfg, key):
            setattr(cfg, key, value)
    save_config(cfg, path)
    return cfg


__all__ = ["AppConfig", "load_config", "save_config", "update_config"]
