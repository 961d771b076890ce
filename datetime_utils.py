from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return ``dt`` as an aware UTC datetime; naive values are taken as UTC.

    SQLite hands datetimes back without tzinfo, so every comparison between a
    stored value and a fresh one goes through here.
    """

    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_rfc3339(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC3339 timestamp into an aware UTC datetime, or ``None``."""

    if not value:
        return None
    text = str(value).strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    if "." in text:
        head, tail = text.split(".", 1)
        cut = len(tail)
        for sign in ("+", "-"):
            pos = tail.find(sign)
            if pos != -1:
                cut = min(cut, pos)
        frac, zone = tail[:cut], tail[cut:]
        text = f"{head}.{(frac + '000000')[:6]}{zone}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return ensure_utc(parsed)


def to_rfc3339_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize to RFC3339 UTC keeping microseconds.

    Remote records are compared with local ones by ``updatedAt``, so the
    precision has to survive a round trip.
    """

    value = ensure_utc(dt)
    if value is None:
        return None
    return value.isoformat(timespec="microseconds").replace("+00:00", "Z")


def same_local_day(dt: Optional[datetime], day: date) -> bool:
    value = ensure_utc(dt)
    if value is None:
        return False
    return value.astimezone().date() == day


__all__ = [
    "UTC",
    "ensure_utc",
    "parse_rfc3339",
    "same_local_day",
    "to_rfc3339_utc",
    "utc_now",
]
