# Overview: Pure schedule arithmetic; builds a day's shift windows and classifies punches into them.

"""
Schedule Builder & Shift Classifier

WHY: Shift configuration is stored as HH:MM text per supervisor/date, but all
duration math runs on absolute instants. This module is the single place
where text becomes instants.

INVARIANTS:
- A window whose end time-of-day is <= its start ends on the next calendar day.
- A DaySchedule is built fresh for every (day, config); nothing is cached.
- Missing fields fall back to DEFAULT_SHIFT_CONFIG per field; malformed text
  raises InvalidConfig.
- Windows are evaluated in the literal order WINDOW_ORDER; first match wins.

All instants are UTC-naive datetimes. The civil day is anchored at a fixed
offset (minutes east of UTC), never a named timezone.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace
from datetime import date, datetime, timedelta

from ..errors import InvalidConfig
from ..time_utils import civil_midnight, to_epoch_ms


WINDOW_AM = "am"
WINDOW_PM = "pm"
WINDOW_OT = "ot"

# Evaluation order for classification and pairing. Earlier entries win ties.
WINDOW_ORDER: tuple[str, ...] = (WINDOW_AM, WINDOW_PM, WINDOW_OT)
OVERTIME_ONLY_ORDER: tuple[str, ...] = (WINDOW_OT,)

# Grace period before a window's official start
SHIFT_BUFFER = timedelta(minutes=30)

DEFAULT_UTC_OFFSET_MINUTES = 480

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


@dataclass(frozen=True)
class ShiftConfig:
    """Six HH:MM boundaries. None means "not set at this layer"."""
    am_in: str | None = None
    am_out: str | None = None
    pm_in: str | None = None
    pm_out: str | None = None
    ot_in: str | None = None
    ot_out: str | None = None

    def over(self, lower: "ShiftConfig") -> "ShiftConfig":
        """Field-wise layering: values set here win, gaps come from `lower`."""
        return replace(
            self,
            **{
                f.name: getattr(lower, f.name)
                for f in fields(self)
                if _is_blank(getattr(self, f.name))
            },
        )

    def with_defaults(self) -> "ShiftConfig":
        return self.over(DEFAULT_SHIFT_CONFIG)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


DEFAULT_SHIFT_CONFIG = ShiftConfig(
    am_in="08:00",
    am_out="12:00",
    pm_in="13:00",
    pm_out="17:00",
    ot_in="17:00",
    ot_out="18:00",
)


@dataclass(frozen=True)
class OvertimeWindow:
    """Explicit absolute overtime window for one date (replaces ot_in/ot_out)."""
    start: datetime
    end: datetime


@dataclass(frozen=True)
class DaySchedule:
    day: date
    am_in: datetime
    am_out: datetime
    pm_in: datetime
    pm_out: datetime
    ot_start: datetime
    ot_end: datetime

    def window(self, slot: str) -> tuple[datetime, datetime]:
        if slot == WINDOW_AM:
            return self.am_in, self.am_out
        if slot == WINDOW_PM:
            return self.pm_in, self.pm_out
        if slot == WINDOW_OT:
            return self.ot_start, self.ot_end
        raise ValueError(f"Unknown shift window: {slot}")

    def to_dict(self) -> dict:
        return {
            "date": self.day.isoformat(),
            "am_in": to_epoch_ms(self.am_in),
            "am_out": to_epoch_ms(self.am_out),
            "pm_in": to_epoch_ms(self.pm_in),
            "pm_out": to_epoch_ms(self.pm_out),
            "ot_start": to_epoch_ms(self.ot_start),
            "ot_end": to_epoch_ms(self.ot_end),
        }


def _is_blank(value: str | None) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_hhmm(value: str) -> int:
    """
    Parse "HH:MM" (or "HH:MM:SS", as some stores return time columns) into
    minutes since midnight.
    """
    if not isinstance(value, str):
        raise InvalidConfig(f"Shift time must be text, got {value!r}")
    m = _HHMM_RE.match(value.strip())
    if not m:
        raise InvalidConfig(f"Malformed shift time: {value!r}")
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidConfig(f"Shift time out of range: {value!r}")
    return hours * 60 + minutes


def normalize_hhmm(value: str | None) -> str | None:
    """Canonical zero-padded "HH:MM", or None for blank input."""
    if _is_blank(value):
        return None
    minutes = parse_hhmm(value)
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def build_window(
    day: date,
    start_text: str,
    end_text: str,
    utc_offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES,
) -> tuple[datetime, datetime]:
    """Absolute (start, end) for one HH:MM window on `day`, rolling overnight ends."""
    start_minutes = parse_hhmm(start_text)
    end_minutes = parse_hhmm(end_text)

    midnight = civil_midnight(day, utc_offset_minutes)
    start = midnight + timedelta(minutes=start_minutes)
    end = midnight + timedelta(minutes=end_minutes)
    if end_minutes <= start_minutes:
        end += timedelta(days=1)
    return start, end


def build_day_schedule(
    day: date,
    config: ShiftConfig,
    overtime: OvertimeWindow | None = None,
    utc_offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES,
) -> DaySchedule:
    cfg = config.with_defaults()

    am_in, am_out = build_window(day, cfg.am_in, cfg.am_out, utc_offset_minutes)
    pm_in, pm_out = build_window(day, cfg.pm_in, cfg.pm_out, utc_offset_minutes)
    if overtime is not None:
        ot_start, ot_end = overtime.start, overtime.end
    else:
        ot_start, ot_end = build_window(day, cfg.ot_in, cfg.ot_out, utc_offset_minutes)

    return DaySchedule(
        day=day,
        am_in=am_in,
        am_out=am_out,
        pm_in=pm_in,
        pm_out=pm_out,
        ot_start=ot_start,
        ot_end=ot_end,
    )


def in_window(
    instant: datetime,
    schedule: DaySchedule,
    slot: str,
    buffer: timedelta = SHIFT_BUFFER,
) -> bool:
    start, end = schedule.window(slot)
    return start - buffer <= instant <= end


def classify_punch(
    instant: datetime,
    schedule: DaySchedule,
    order: tuple[str, ...] = WINDOW_ORDER,
    buffer: timedelta = SHIFT_BUFFER,
) -> str | None:
    """
    Window ("am", "pm", "ot") the instant belongs to, or None when it falls
    outside every buffered window.
    """
    for slot in order:
        if in_window(instant, schedule, slot, buffer):
            return slot
    return None


def out_belongs_to(
    instant: datetime,
    schedule: DaySchedule,
    slot: str,
    order: tuple[str, ...] = WINDOW_ORDER,
    buffer: timedelta = SHIFT_BUFFER,
) -> bool:
    """
    Whether a clock-out belongs to `slot`.

    Its range starts at the buffered start of `slot` and runs up to the
    official start of the next window in `order` (exclusive) or the official
    end of `slot` plus the buffer, whichever is later. The last window is
    open-ended. Clamping takes care of time past the official end.
    """
    start, end = schedule.window(slot)
    if instant < start - buffer:
        return False
    idx = order.index(slot)
    if idx + 1 < len(order):
        next_start, _ = schedule.window(order[idx + 1])
        return instant < next_start or instant <= end + buffer
    return True
