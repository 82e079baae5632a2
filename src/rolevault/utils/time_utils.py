from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(time.time() * 1000)


def days_from_now(days: int) -> datetime:
    return utc_now() + timedelta(days=days)


def as_utc(dt: datetime) -> datetime:
    # Mongo hands back naive datetimes that are UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
