from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


_EPOCH = datetime(1970, 1, 1)


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse "YYYY-MM-DD"; None / "" -> None. Raises ValueError on bad input."""
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    return date.fromisoformat(s)


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


def to_epoch_ms(dt: Optional[datetime]) -> Optional[int]:
    """UTC-naive datetime -> integer epoch milliseconds."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return (dt - _EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(ms: int | float) -> datetime:
    """Epoch milliseconds -> UTC-naive datetime."""
    return _EPOCH + timedelta(milliseconds=int(ms))


def civil_offset(offset_minutes: int) -> timedelta:
    return timedelta(minutes=offset_minutes)


def civil_date(instant: datetime, offset_minutes: int) -> date:
    """Calendar day of a UTC-naive instant at the fixed civil offset."""
    return (instant + civil_offset(offset_minutes)).date()


def civil_midnight(day: date, offset_minutes: int) -> datetime:
    """UTC-naive instant of local midnight for `day` at the fixed civil offset."""
    return datetime.combine(day, time()) - civil_offset(offset_minutes)


def truncate_to_minute(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0)
