# Overview: Read-side day/range summaries; live pairing over stored punches, frozen ledger rows preferred.

from __future__ import annotations

from datetime import date, datetime, timedelta

from ..extensions import db
from ..models import AttendancePunch, LedgerEntry, Student
from ..models.attendance import APPROVED_STATUSES, PunchStatus
from ..time_utils import civil_date, to_epoch_ms, utcnow
from .duration_service import format_duration
from .pairing_service import Session, pair_sessions, session_duration_ms
from .shift_config_service import schedule_for_student, utc_offset_minutes


SOURCE_LEDGER = "ledger"
SOURCE_LIVE = "live"

MAX_RANGE_DAYS = 366

_APPROVED_VALUES = frozenset(s.value for s in APPROVED_STATUSES)


def _is_approved(punch) -> bool:
    return punch is not None and punch.id is not None and punch.status in _APPROVED_VALUES


def _match_entry(session: Session, entries: list[LedgerEntry]) -> LedgerEntry | None:
    for entry in entries:
        if entry.in_punch_id == session.punch_in.id:
            return entry
    # the out may have closed a row under a different in (raw fallback)
    out_id = session.punch_out.id if session.punch_out is not None else None
    if out_id is not None:
        for entry in entries:
            if entry.out_punch_id == out_id:
                return entry
    shift_id = session.punch_in.shift_id
    if shift_id is None:
        return None
    for entry in entries:
        if entry.shift_id == shift_id:
            return entry
    return None


def _session_to_dict(session: Session, live_ms: int, entry: LedgerEntry | None) -> dict:
    used_ms = entry.worked_minutes * 60_000 if entry is not None else live_ms
    return {
        "slot": session.slot,
        "in_punch_id": session.punch_in.id,
        "out_punch_id": session.punch_out.id if session.punch_out is not None else None,
        "in_ts": to_epoch_ms(session.started_at),
        "out_ts": to_epoch_ms(session.ended_at),
        "is_open": session.is_open,
        "virtual_out": session.is_virtual_out,
        "validated_by": getattr(session.punch_out, "validated_by", None),
        "authorized_overtime": session.authorized_overtime,
        "live_ms": live_ms,
        "frozen_hours": entry.hours if entry is not None else None,
        "ledger_entry_id": entry.id if entry is not None else None,
        "source": SOURCE_LEDGER if entry is not None else SOURCE_LIVE,
        "ms": used_ms,
        "validated": _is_approved(session.punch_in) and _is_approved(session.punch_out),
    }


def summarize_day(student: Student, day: date, *, now: datetime | None = None) -> dict:
    """
    Sessions for one student's day.

    Each session reports its live (unrounded) value and, when a ledger row
    exists for it, the frozen hours; `ms` is the value the totals use.
    Open sessions (today only) contribute nothing until closed.
    """
    now = now or utcnow()
    today = civil_date(now, utc_offset_minutes())

    punches = db.session.query(AttendancePunch).filter(
        AttendancePunch.student_id == student.id,
        AttendancePunch.attendance_date == day,
        AttendancePunch.status != PunchStatus.REJECTED.value,
    ).order_by(AttendancePunch.occurred_at.asc()).all()

    schedule = schedule_for_student(student, day)
    sessions = pair_sessions(punches, schedule, is_past=day < today)
    entries = db.session.query(LedgerEntry).filter_by(student_id=student.id, attendance_date=day).all()

    rows = []
    used_entry_ids = set()
    total_ms = 0
    validated_ms = 0
    active = None

    for session in sessions:
        entry = _match_entry(session, entries)
        if entry is not None:
            used_entry_ids.add(entry.id)
        row = _session_to_dict(session, session_duration_ms(session, schedule), entry)
        rows.append(row)
        total_ms += row["ms"]
        if row["validated"]:
            validated_ms += row["ms"]
        if session.is_open and day == today:
            active = {"slot": session.slot, "started_at": to_epoch_ms(session.started_at)}

    # Rows frozen for punches the live pairing cannot place (raw fallback)
    unpaired = [e for e in entries if e.id not in used_entry_ids]
    for entry in unpaired:
        total_ms += entry.worked_minutes * 60_000

    return {
        "date": day.isoformat(),
        "schedule": schedule.to_dict(),
        "sessions": rows,
        "unpaired_ledger_entries": [e.to_dict() for e in unpaired],
        "total_ms": total_ms,
        "total": format_duration(total_ms),
        "validated_ms": validated_ms,
        "validated": format_duration(validated_ms),
        "active_session": active,
    }


def summarize_range(student: Student, start: date, end: date, *, now: datetime | None = None) -> dict:
    if end < start:
        raise ValueError("end must not be before start")
    if (end - start).days >= MAX_RANGE_DAYS:
        raise ValueError(f"range must be shorter than {MAX_RANGE_DAYS} days")

    now = now or utcnow()
    days = []
    day = start
    while day <= end:
        days.append(summarize_day(student, day, now=now))
        day += timedelta(days=1)

    total_ms = sum(d["total_ms"] for d in days)
    validated_ms = sum(d["validated_ms"] for d in days)
    active = next((d["active_session"] for d in days if d["active_session"]), None)

    return {
        "student_id": student.id,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "days": days,
        "total_ms": total_ms,
        "total": format_duration(total_ms),
        "validated_ms": validated_ms,
        "validated": format_duration(validated_ms),
        "active_session": active,
    }
