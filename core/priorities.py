"""Priority levels accepted for task items."""
from __future__ import annotations

from typing import Dict

# 0 is "no priority"; higher numbers sort first in the task list.
PRIORITY_LABELS: Dict[int, str] = {
    0: "none",
    1: "low",
    2: "medium",
    3: "high",
}

DEFAULT_PRIORITY = 0


def normalize_priority(value: int | str | None) -> int:
    """Clamp external values to the supported priority range."""
    if value is None:
        return DEFAULT_PRIORITY
    try:
        ivalue = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PRIORITY
    floor = min(PRIORITY_LABELS.keys())
    ceil = max(PRIORITY_LABELS.keys())
    return max(floor, min(ceil, ivalue))


def priority_label(value: int) -> str:
    return PRIORITY_LABELS.get(value, PRIORITY_LABELS[DEFAULT_PRIORITY])


__all__ = ["DEFAULT_PRIORITY", "PRIORITY_LABELS", "normalize_priority", "priority_label"]
