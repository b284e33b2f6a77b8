"""
Time helpers.

pymongo hands back naive datetimes in UTC (tz_aware=False), so every
timestamp we write is naive UTC too; comparing aware and naive values
raises TypeError.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, truncated to BSON (millisecond) precision."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)
