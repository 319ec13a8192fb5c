# =============================================================================
# File: titan/utils/datetime_utils.py
# Description: Datetime utilities with robust parsing of feed timestamps
# =============================================================================

import re
from datetime import datetime, timezone, timedelta
from typing import Optional, Union


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp_robust(
    timestamp: Union[str, datetime, None],
    fallback: Optional[datetime] = None
) -> Optional[datetime]:
    """
    Parse a timestamp from a persisted record.

    Handles:
    - ISO 8601 format, including the 'Z' suffix
    - PostgreSQL hour 24 format (edge case from NOW()::text)
    - Missing timezone (defaults to UTC)
    - Already datetime objects

    Examples:
        >>> parse_timestamp_robust("2025-11-25T00:54:40.123456+00:00")
        datetime(2025, 11, 25, 0, 54, 40, 123456, tzinfo=timezone.utc)

        >>> parse_timestamp_robust("2025-11-25 24:00:00")
        datetime(2025, 11, 26, 0, 0, 0, tzinfo=timezone.utc)
    """
    if timestamp is None:
        return fallback

    if isinstance(timestamp, datetime):
        return ensure_utc(timestamp)

    if not isinstance(timestamp, str):
        return fallback

    ts = timestamp.strip().replace('Z', '+00:00')

    # "2025-11-25 24:00:00" is midnight of the next day
    hour_24_match = re.match(r'^(\d{4}-\d{2}-\d{2})[\sT]24:(\d{2}:\d{2}(?:\.\d+)?)(.*)$', ts)
    if hour_24_match:
        date_part, time_remainder, tz_part = hour_24_match.groups()
        try:
            next_day = datetime.strptime(date_part, '%Y-%m-%d') + timedelta(days=1)
            ts = f"{next_day.strftime('%Y-%m-%d')}T00:{time_remainder}{tz_part}"
        except ValueError:
            pass

    try:
        return ensure_utc(datetime.fromisoformat(ts))
    except ValueError:
        return fallback


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure datetime has UTC timezone."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
