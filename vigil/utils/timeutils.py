# vigil/utils/timeutils.py
"""Timestamps are stored as naive UTC; client input may carry an offset."""

from datetime import datetime, timezone
from typing import Optional


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
