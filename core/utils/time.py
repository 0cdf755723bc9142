"""
Time Utilities

Exchanges disagree on how they express time:
- Binance, Bybit, Kucoin, MEXC: milliseconds since epoch (e.g., 1704110400000)
- Signing headers: milliseconds (Binance, Bybit, Kucoin, MEXC, BitFlyer, Coincheck)
  or seconds (Bitmex api-expires)
- Bitmex, BitFlyer: ISO-8601 strings

Everything here returns timezone-aware UTC datetimes or integer epoch values.
"""

import time
from datetime import datetime, timezone
from typing import Union

from dateutil import parser as dateparser


def now_ms() -> int:
    """Current time in milliseconds since epoch, as used in signatures."""
    return int(time.time() * 1000)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_datetime(timestamp: Union[int, float]) -> datetime:
    """
    Convert a timestamp (seconds or milliseconds) to UTC datetime.

    Values above 1e12 are taken as milliseconds.

    Args:
        timestamp: Unix timestamp in seconds or milliseconds

    Returns:
        datetime: Timezone-aware datetime in UTC

    Raises:
        ValueError: If timestamp is negative or out of range

    Examples:
        >>> to_utc_datetime(1704110400000)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
        >>> to_utc_datetime(1704110400)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
    """
    if timestamp < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")

    if timestamp > 1e12:
        timestamp = timestamp / 1000.0

    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OSError, OverflowError, ValueError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp}. Error: {e}") from e


def datetime_to_ms(dt: datetime) -> int:
    """
    Convert a datetime to milliseconds since epoch.

    Naive datetimes are taken as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def parse_iso(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp such as "2024-01-01T12:00:00.000Z".

    Naive results are taken as UTC.
    """
    dt = dateparser.isoparse(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
