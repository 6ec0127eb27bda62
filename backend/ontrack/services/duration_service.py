# Overview: Clamped session duration arithmetic shared by the ledger and read-side summaries.

from __future__ import annotations

from datetime import datetime, timedelta

from ..time_utils import truncate_to_minute
from .schedule_service import DaySchedule


_MS = timedelta(milliseconds=1)


def clamped_duration_ms(
    punch_in: datetime,
    punch_out: datetime,
    official_in: datetime,
    official_out: datetime,
) -> int:
    """
    Billable milliseconds of [punch_in, punch_out] inside [official_in, official_out].

    max(0, min(punch_out, official_out) - max(punch_in, official_in))
    """
    start = max(punch_in, official_in)
    end = min(punch_out, official_out)
    if end <= start:
        return 0
    return (end - start) // _MS


def window_duration_ms(
    punch_in: datetime,
    punch_out: datetime,
    slot: str,
    schedule: DaySchedule,
) -> int:
    official_in, official_out = schedule.window(slot)
    return clamped_duration_ms(punch_in, punch_out, official_in, official_out)


def raw_duration_ms(punch_in: datetime, punch_out: datetime) -> int:
    """Unclamped elapsed time; never negative."""
    if punch_out <= punch_in:
        return 0
    return (punch_out - punch_in) // _MS


def raw_duration_minute_truncated_ms(punch_in: datetime, punch_out: datetime) -> int:
    """Unclamped elapsed time with the seconds of both instants dropped."""
    return raw_duration_ms(truncate_to_minute(punch_in), truncate_to_minute(punch_out))


def ms_to_hours(ms: int) -> float:
    return ms / 3_600_000


def round_hours_to_minute(hours: float) -> float:
    """round(hours * 60) / 60, applied before a value is frozen."""
    return round(hours * 60) / 60


def ms_to_rounded_minutes(ms: int) -> int:
    return round(ms / 60_000)


def format_duration(ms: int) -> str:
    """ "3h 55m" display form, rounded to the nearest minute."""
    if not ms:
        return "0h 0m"
    total_minutes = ms_to_rounded_minutes(ms)
    return f"{total_minutes // 60}h {total_minutes % 60}m"
