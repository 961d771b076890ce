"""Logging configuration shared by the sync engine."""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from core.settings import LOGGING, LoggingSettings


ROOT_LOGGER = "todolist"
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def ensure_logging(settings: Optional[LoggingSettings] = None) -> logging.Logger:
    """Attach the rotating file handler to the ``todolist`` logger once."""

    cfg = settings or LOGGING
    logger = logging.getLogger(ROOT_LOGGER)
    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        path = Path(cfg.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path,
            maxBytes=cfg.max_bytes,
            backupCount=cfg.backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))
    return logger


__all__ = ["ROOT_LOGGER", "ensure_logging"]
