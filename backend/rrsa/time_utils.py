from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional


Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is read as midnight UTC
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def is_past(value: Optional[str], now: datetime) -> bool:
    """
    True when an ISO timestamp lies strictly before `now`.

    Unset or unparseable timestamps never count as past, so a malformed
    expiry reads as "no expiry".
    """
    try:
        moment = parse_iso_datetime(value)
    except (TypeError, ValueError):
        return False
    if moment is None:
        return False
    return now > moment


def end_of_day_z(day: str) -> str:
    """Expand a bare YYYY-MM-DD into the last second of that day (UTC)."""
    parsed = datetime.fromisoformat(day.strip())
    return to_utc_z(parsed.replace(hour=23, minute=59, second=59))


def minutes_after(now: datetime, minutes: float) -> datetime:
    return now + timedelta(minutes=minutes)
