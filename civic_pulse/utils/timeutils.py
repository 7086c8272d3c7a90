"""
Timestamp helpers. All stored timestamps are timezone-aware UTC.
"""

import math
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse various timestamp formats to timezone-aware datetime (UTC)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    # Firestore Timestamp interface
    if hasattr(value, "timestamp"):
        try:
            return datetime.fromtimestamp(value.timestamp(), tz=timezone.utc)
        except (TypeError, ValueError, OSError):
            return None
    return None


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def hours_between(start: datetime, end: datetime) -> float:
    start = parse_timestamp(start)
    end = parse_timestamp(end)
    return (end - start).total_seconds() / 3600
