# Overview: Pairs one student's punches for one day into am/pm/ot sessions.

"""
Session Pairer

WHY: Trainees punch in and out freely (and sometimes twice). Billing needs at
most one session per window per day, each with a definite end.

RULES:
1. Each unused "in" fills the first unfilled window (WINDOW_ORDER) whose
   buffered range contains it.
2. The session's "out" is the LATEST unused "out" that is after the "in",
   before the next filled "in", and belongs to the same window.
3. A past day's open session is closed by a virtual out at the window's
   official end (in + 1 minute if that end is not after the in). Today's open
   sessions stay open.

Authorized-overtime ins are paired first against the overtime-only order and
take the "ot" slot. Rejected punches are ignored. Sessions are never stored.

Punches are duck-typed: anything with `kind`, `occurred_at`, `status` and
`is_authorized_overtime` attributes (AttendancePunch rows in practice).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Iterator, Optional

from ..models.attendance import AUTO_CLOSE_VALIDATOR, PunchKind, PunchStatus
from .duration_service import raw_duration_ms, window_duration_ms
from .schedule_service import (
    OVERTIME_ONLY_ORDER,
    WINDOW_ORDER,
    WINDOW_OT,
    DaySchedule,
    in_window,
    out_belongs_to,
)


VIRTUAL_OUT_MIN_SPAN = timedelta(minutes=1)


@dataclass(frozen=True)
class VirtualOut:
    """Synthesized clock-out for a past, unclosed session. Never persisted."""
    occurred_at: datetime
    kind: str = PunchKind.OUT.value
    validated_by: str = AUTO_CLOSE_VALIDATOR
    status: str = PunchStatus.RAW.value
    evidence_url: None = None
    id: None = None


@dataclass(frozen=True)
class Session:
    slot: str
    punch_in: Any
    punch_out: Any = None
    authorized_overtime: bool = False

    @property
    def is_open(self) -> bool:
        return self.punch_out is None

    @property
    def is_virtual_out(self) -> bool:
        return isinstance(self.punch_out, VirtualOut)

    @property
    def started_at(self) -> datetime:
        return self.punch_in.occurred_at

    @property
    def ended_at(self) -> Optional[datetime]:
        return self.punch_out.occurred_at if self.punch_out is not None else None


@dataclass
class DaySessions:
    schedule: DaySchedule
    by_slot: dict[str, Session] = field(default_factory=dict)

    @property
    def am(self) -> Optional[Session]:
        return self.by_slot.get("am")

    @property
    def pm(self) -> Optional[Session]:
        return self.by_slot.get("pm")

    @property
    def ot(self) -> Optional[Session]:
        return self.by_slot.get("ot")

    def __iter__(self) -> Iterator[Session]:
        for slot in WINDOW_ORDER:
            if slot in self.by_slot:
                yield self.by_slot[slot]

    def __len__(self) -> int:
        return len(self.by_slot)


def _usable(punches: Iterable[Any]) -> list[Any]:
    rows = [p for p in punches if p.status != PunchStatus.REJECTED.value]
    return sorted(rows, key=lambda p: p.occurred_at)


def _assign_ins(ins: list[Any], schedule: DaySchedule) -> dict[str, tuple[Any, bool]]:
    filled: dict[str, tuple[Any, bool]] = {}

    for punch in ins:
        if not punch.is_authorized_overtime or WINDOW_OT in filled:
            continue
        if in_window(punch.occurred_at, schedule, WINDOW_OT):
            filled[WINDOW_OT] = (punch, True)

    taken = {id(p) for p, _ in filled.values()}
    for punch in ins:
        if id(punch) in taken or punch.is_authorized_overtime:
            continue
        for slot in WINDOW_ORDER:
            if slot in filled:
                continue
            if in_window(punch.occurred_at, schedule, slot):
                filled[slot] = (punch, False)
                taken.add(id(punch))
                break

    return filled


def pair_sessions(
    punches: Iterable[Any],
    schedule: DaySchedule,
    *,
    is_past: bool,
) -> DaySessions:
    rows = _usable(punches)
    ins = [p for p in rows if p.kind == PunchKind.IN.value]
    outs = [p for p in rows if p.kind == PunchKind.OUT.value]

    filled = _assign_ins(ins, schedule)
    in_times = sorted(p.occurred_at for p, _ in filled.values())

    result = DaySessions(schedule=schedule)
    used_outs: set[int] = set()

    for slot in WINDOW_ORDER:
        if slot not in filled:
            continue
        punch_in, overtime = filled[slot]
        order = OVERTIME_ONLY_ORDER if overtime else WINDOW_ORDER
        next_in = next((t for t in in_times if t > punch_in.occurred_at), None)

        chosen = None
        for punch_out in outs:
            if id(punch_out) in used_outs:
                continue
            if punch_out.occurred_at <= punch_in.occurred_at:
                continue
            if next_in is not None and punch_out.occurred_at >= next_in:
                continue
            if not out_belongs_to(punch_out.occurred_at, schedule, slot, order):
                continue
            # outs are time-sorted; the last qualifying one stands
            chosen = punch_out

        if chosen is not None:
            used_outs.add(id(chosen))
        elif is_past:
            _, official_end = schedule.window(slot)
            end = official_end
            if end <= punch_in.occurred_at:
                end = punch_in.occurred_at + VIRTUAL_OUT_MIN_SPAN
            chosen = VirtualOut(occurred_at=end)

        result.by_slot[slot] = Session(
            slot=slot,
            punch_in=punch_in,
            punch_out=chosen,
            authorized_overtime=overtime,
        )

    return result


def session_duration_ms(session: Session, schedule: DaySchedule, now: datetime | None = None) -> int:
    """
    Live (unrounded) billable milliseconds of a session.

    Open sessions count up to `now` when given, else contribute nothing.
    Authorized overtime is trusted end to end and never clamped.
    """
    end = session.ended_at
    if end is None:
        if now is None:
            return 0
        end = now
    if session.authorized_overtime:
        return raw_duration_ms(session.started_at, end)
    return window_duration_ms(session.started_at, end, session.slot, schedule)
