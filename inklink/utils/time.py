# inklink/utils/time.py
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC.

    Naive values are treated as UTC; some backends (SQLite) hand stored
    timestamps back without tzinfo.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
