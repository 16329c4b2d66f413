from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Optional

__all__ = ["utc_now", "utc_iso", "as_utc", "start_of_day"]


def utc_now() -> datetime:
    """Timezone-aware current UTC time (replaces datetime.utcnow)."""
    return datetime.now(timezone.utc)


def utc_iso(ts: Optional[datetime] = None) -> str:
    """Return RFC3339/ISO8601 string with a trailing Z for UTC."""
    d = as_utc(ts) if ts else utc_now()
    # datetime.isoformat() returns +00:00 for UTC; normalize to Z
    return d.isoformat().replace("+00:00", "Z")


def as_utc(dt: datetime) -> datetime:
    """Attach/convert to UTC. Naive values (SQLite round-trips) are taken as UTC already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def start_of_day(dt: datetime, days_back: int = 0) -> datetime:
    d = as_utc(dt) - timedelta(days=days_back)
    return d.replace(hour=0, minute=0, second=0, microsecond=0)
