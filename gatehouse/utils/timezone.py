"""
Timezone Utilities.

Golden Rules:
1. Database: Always store UTC
2. API: Return ISO 8601 (UTC)
3. Never compare naive and aware datetimes; normalize with to_utc first
"""

from datetime import datetime, timezone

# UTC constant
UTC = timezone.utc


def utc_now() -> datetime:
    """
    Get current time in UTC (timezone-aware).

    Always use this instead of datetime.utcnow() which returns
    naive datetime.
    """
    return datetime.now(UTC)


def to_utc(dt: datetime) -> datetime:
    """
    Convert datetime to UTC.

    Naive datetimes are assumed to already be UTC; some backends
    (SQLite) drop the offset on the way back out.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_iso8601(dt: datetime) -> str:
    """
    Format as ISO 8601 with Z suffix.

    Usage:
        iso = to_iso8601(record.created_at)
        # "2024-01-15T14:30:00Z"
    """
    return to_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def iso_now() -> str:
    """Current UTC time as ISO 8601, for response envelopes."""
    return to_iso8601(utc_now())
