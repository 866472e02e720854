"""
Timestamp Utilities

Every stored record carries an ISO-8601 UTC timestamp. These helpers
produce, parse and bucket those timestamps so the event logs, the
notification center and the analytics all agree on what "age" and
"time of day" mean.
"""

from datetime import date, datetime, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

MINUTES_PER_DAY = 24 * 60


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def to_iso(ts: datetime) -> str:
    """
    Format a datetime as an ISO string with millisecond precision.

    Naive datetimes are assumed to be UTC.

    Examples:
        2025-01-15 10:30:17.234567+00:00 → "2025-01-15T10:30:17.234Z"
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    ts = ts.astimezone(timezone.utc)
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an ISO timestamp string into an aware UTC datetime.

    Accepts a trailing "Z" and naive strings (treated as UTC).

    Returns:
        Parsed datetime, or None if the value is missing or unparseable
    """
    if not isinstance(value, str) or not value:
        return None

    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def record_timestamp(record: Any, fields: tuple[str, ...] = ("ts", "time")) -> datetime | None:
    """
    Timestamp of a stored record, checking each field in order.

    Args:
        record: A stored entry (non-dict entries have no timestamp)
        fields: Candidate timestamp fields, first match wins

    Returns:
        Parsed timestamp, or None if the record is undated
    """
    if not isinstance(record, dict):
        return None
    for name in fields:
        if name in record:
            parsed = parse_timestamp(record[name])
            if parsed is not None:
                return parsed
    return None


def get_zone(name: str | None) -> tzinfo:
    """Resolve an IANA zone name, falling back to UTC"""
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def minute_of_day(ts: datetime, tz: tzinfo = timezone.utc) -> int:
    """Minutes since local midnight (0-1439)"""
    local = ts.astimezone(tz)
    return local.hour * 60 + local.minute


def minutes_to_hhmm(minutes: float) -> str:
    """
    Convert minute-of-day to an "HH:MM" string.

    Rounds to the nearest minute and wraps past midnight.

    Examples:
        598.33 → "09:58"
        1440   → "00:00"
    """
    total = int(round(minutes)) % MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def local_date(ts: datetime, tz: tzinfo = timezone.utc) -> date:
    """Calendar date of a timestamp in the given zone"""
    return ts.astimezone(tz).date()
