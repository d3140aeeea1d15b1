from __future__ import annotations

from datetime import datetime, timezone


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        # treat naive input as UTC (consistent behavior)
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
