# Overview: Service-layer operations for the hours ledger; freezes computed hours per (student, date, shift).

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import AttendancePunch, LedgerEntry, ShiftDefinition, Student
from ..models.attendance import PunchKind, PunchStatus
from ..models.ledger import LEDGER_STATUS_ADJUSTED, LEDGER_STATUS_FROZEN
from ..models.shifts import SLOT_DEFAULT, SLOT_OT
from ..time_utils import utcnow
from .concurrency import dialect_name, run_with_retry
from .duration_service import (
    clamped_duration_ms,
    ms_to_hours,
    raw_duration_minute_truncated_ms,
    raw_duration_ms,
    round_hours_to_minute,
)
from .schedule_service import DaySchedule, build_window, classify_punch
from .shift_config_service import (
    DEFAULT_SHIFT_END,
    DEFAULT_SHIFT_START,
    SLOT_TO_WINDOW,
    WINDOW_TO_SLOT,
    ensure_shift_definition,
    schedule_for_student,
    utc_offset_minutes,
)


"""
Hours Ledger Invariants (authoritative)

- One row per (student_id, attendance_date, shift_id), written by upsert only.
- A row is computed once, when its out punch is recorded. Read-side
  aggregation prefers it over live recomputation from then on.
- Only an administrator correction of the source punches (or an explicit
  rebuild) recomputes a row. Schedule edits never do.
- Freezing the same punches twice yields the same hours and snapshot.
- The ledger is a derived projection: a failed freeze never undoes the punch.
"""


_UPDATE_COLUMNS = (
    "hours",
    "worked_minutes",
    "official_time_in",
    "official_time_out",
    "in_punch_id",
    "out_punch_id",
    "status",
    "frozen_at",
)


@dataclass(frozen=True)
class FrozenHours:
    student_id: int
    attendance_date: date
    shift_id: int
    hours: float
    worked_minutes: int
    official_time_in: datetime | None
    official_time_out: datetime | None
    in_punch_id: int
    out_punch_id: int
    status: str

    def row_values(self) -> dict:
        return asdict(self)


def find_session_in(out_punch: AttendancePunch) -> AttendancePunch | None:
    """Most recent non-rejected in before `out_punch` on its session date."""
    return db.session.query(AttendancePunch).filter(
        AttendancePunch.student_id == out_punch.student_id,
        AttendancePunch.attendance_date == out_punch.attendance_date,
        AttendancePunch.kind == PunchKind.IN.value,
        AttendancePunch.status != PunchStatus.REJECTED.value,
        AttendancePunch.occurred_at < out_punch.occurred_at,
    ).order_by(AttendancePunch.occurred_at.desc(), AttendancePunch.id.desc()).first()


def resolve_governing_shift(
    punch_in: AttendancePunch,
    student: Student,
    schedule: DaySchedule,
) -> ShiftDefinition | None:
    """
    Stored shift_id first; legacy rows without one are re-classified.
    None means no governing shift (raw fallback), which is not an error.
    """
    if punch_in.shift_id:
        shift = db.session.get(ShiftDefinition, punch_in.shift_id)
        if shift:
            return shift
    window = classify_punch(punch_in.occurred_at, schedule)
    if window is None:
        return None
    return ensure_shift_definition(student.supervisor_id, WINDOW_TO_SLOT[window])


def official_window(shift: ShiftDefinition, schedule: DaySchedule) -> tuple[datetime, datetime]:
    """Official boundaries of `shift` on the schedule's day (overnight-aware)."""
    window = SLOT_TO_WINDOW.get(shift.slot)
    if window:
        return schedule.window(window)
    return build_window(
        schedule.day,
        shift.official_start or DEFAULT_SHIFT_START,
        shift.official_end or DEFAULT_SHIFT_END,
        utc_offset_minutes(),
    )


def compute_frozen_hours(
    punch_in: AttendancePunch,
    punch_out: AttendancePunch,
    student: Student,
) -> FrozenHours:
    schedule = schedule_for_student(student, punch_in.attendance_date)
    official_in = official_out = None

    if punch_in.is_authorized_overtime:
        shift = db.session.get(ShiftDefinition, punch_in.shift_id) if punch_in.shift_id else None
        if shift is None:
            shift = ensure_shift_definition(student.supervisor_id, SLOT_OT)
        ms = raw_duration_ms(punch_in.occurred_at, punch_out.occurred_at)
    else:
        shift = resolve_governing_shift(punch_in, student, schedule)
        if shift is not None:
            official_in, official_out = official_window(shift, schedule)
            ms = clamped_duration_ms(punch_in.occurred_at, punch_out.occurred_at, official_in, official_out)
        else:
            # TODO: product review; unmatched punches accrue unclamped time
            ms = raw_duration_minute_truncated_ms(punch_in.occurred_at, punch_out.occurred_at)
            shift = ensure_shift_definition(student.supervisor_id, SLOT_DEFAULT)

    hours = round_hours_to_minute(ms_to_hours(ms))
    adjusted = PunchStatus.ADJUSTED.value in (punch_in.status, punch_out.status)

    return FrozenHours(
        student_id=student.id,
        attendance_date=punch_in.attendance_date,
        shift_id=shift.id,
        hours=hours,
        worked_minutes=round(hours * 60),
        official_time_in=official_in,
        official_time_out=official_out,
        in_punch_id=punch_in.id,
        out_punch_id=punch_out.id,
        status=LEDGER_STATUS_ADJUSTED if adjusted else LEDGER_STATUS_FROZEN,
    )


def _upsert_fallback(values: dict) -> None:
    """Update-then-insert for dialects without ON CONFLICT support."""
    key = {
        "student_id": values["student_id"],
        "attendance_date": values["attendance_date"],
        "shift_id": values["shift_id"],
    }
    updates = {k: values[k] for k in _UPDATE_COLUMNS}
    updated = db.session.query(LedgerEntry).filter_by(**key).update(updates, synchronize_session=False)
    if updated:
        return
    db.session.add(LedgerEntry(**values))
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        if not db.session.query(LedgerEntry).filter_by(**key).update(updates, synchronize_session=False):
            raise


def upsert_ledger_entry(frozen: FrozenHours, *, frozen_at: datetime | None = None) -> LedgerEntry:
    """Atomic insert-or-overwrite on (student_id, attendance_date, shift_id). Does not commit."""
    values = frozen.row_values()
    values["frozen_at"] = frozen_at or utcnow()

    name = dialect_name()
    if name in ("sqlite", "postgresql"):
        insert = sqlite_insert if name == "sqlite" else pg_insert
        stmt = insert(LedgerEntry).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["student_id", "attendance_date", "shift_id"],
            set_={col: stmt.excluded[col] for col in _UPDATE_COLUMNS},
        )
        db.session.execute(stmt)
    else:
        _upsert_fallback(values)

    return db.session.query(LedgerEntry).filter_by(
        student_id=values["student_id"],
        attendance_date=values["attendance_date"],
        shift_id=values["shift_id"],
    ).populate_existing().one()


def _frozen_for_out(punch_out: AttendancePunch) -> FrozenHours | None:
    punch_in = find_session_in(punch_out)
    if punch_in is None:
        current_app.logger.info("No in punch precedes out punch %s; nothing to freeze", punch_out.id)
        return None
    student = db.session.get(Student, punch_out.student_id)
    return compute_frozen_hours(punch_in, punch_out, student)


def freeze_out_punch(out_punch: AttendancePunch, *, frozen_at: datetime | None = None) -> LedgerEntry | None:
    """
    Compute and persist the ledger row closed by `out_punch`.

    Returns None when no in punch precedes it on its session date.
    Commits on success; exceptions propagate (see safe_freeze_out_punch).
    """
    out_id = out_punch.id

    def _op() -> LedgerEntry | None:
        frozen = _frozen_for_out(db.session.get(AttendancePunch, out_id))
        if frozen is None:
            return None
        entry = upsert_ledger_entry(frozen, frozen_at=frozen_at)
        db.session.commit()
        return entry

    return run_with_retry(_op)


def safe_freeze_out_punch(out_punch: AttendancePunch) -> LedgerEntry | None:
    """Best-effort freeze: failures are logged and swallowed, never rolled into the punch."""
    out_id = out_punch.id
    try:
        return freeze_out_punch(out_punch)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to freeze ledger for out punch %s", out_id)
        return None


def _latest_out_per_session(outs: list[AttendancePunch]) -> dict[int, AttendancePunch]:
    """{in_punch_id: latest out} for time-sorted outs; outs without an in are dropped."""
    latest: dict[int, AttendancePunch] = {}
    for out in outs:
        punch_in = find_session_in(out)
        if punch_in is not None:
            latest[punch_in.id] = out
    return latest


def refreeze_after_edit(punch: AttendancePunch) -> list[LedgerEntry]:
    """
    Re-run the freeze for every session the corrected punch takes part in.

    Rows sourced from the punch are replaced (its key may have moved, or it
    may no longer count) by fresh rows for the latest out of each affected
    session. One transaction: on any failure the previous rows stay in place.
    """
    punch_id = punch.id

    def _op() -> list[LedgerEntry]:
        edited = db.session.get(AttendancePunch, punch_id)
        stale = db.session.query(LedgerEntry).filter(
            or_(LedgerEntry.in_punch_id == punch_id, LedgerEntry.out_punch_id == punch_id)
        ).all()
        dates = {row.attendance_date for row in stale} | {edited.attendance_date}
        affected_ins = {row.in_punch_id for row in stale if row.in_punch_id}
        stale_out_ids = {row.out_punch_id for row in stale if row.out_punch_id}

        if edited.status != PunchStatus.REJECTED.value:
            if edited.kind == PunchKind.IN.value:
                affected_ins.add(edited.id)
            else:
                stale_out_ids.add(edited.id)

        # outs that lost their row may now close an earlier in
        for out_id in stale_out_ids:
            out = db.session.get(AttendancePunch, out_id)
            if out is None or out.status == PunchStatus.REJECTED.value:
                continue
            punch_in = find_session_in(out)
            if punch_in is not None:
                affected_ins.add(punch_in.id)

        outs = db.session.query(AttendancePunch).filter(
            AttendancePunch.student_id == edited.student_id,
            AttendancePunch.attendance_date.in_(dates),
            AttendancePunch.kind == PunchKind.OUT.value,
            AttendancePunch.status != PunchStatus.REJECTED.value,
        ).order_by(AttendancePunch.occurred_at.asc(), AttendancePunch.id.asc()).all()

        # Computed before any delete is staged: shift materialization may roll back.
        pending = []
        for in_id, out in _latest_out_per_session(outs).items():
            if in_id not in affected_ins:
                continue
            frozen = _frozen_for_out(out)
            if frozen is not None:
                pending.append(frozen)

        for row in stale:
            db.session.delete(row)
        db.session.flush()

        entries = [upsert_ledger_entry(frozen) for frozen in pending]
        db.session.commit()
        return entries

    return run_with_retry(_op)


def rebuild_ledger(
    *,
    student_id: int | None = None,
    since: date | None = None,
    until: date | None = None,
    only_missing: bool = True,
) -> dict:
    """
    Repair pass: re-freeze sessions from stored punches.

    Only the latest out of each session is frozen. With only_missing, sessions
    whose row already references that exact in/out pair are left untouched.
    """
    query = db.session.query(AttendancePunch).filter(
        AttendancePunch.kind == PunchKind.OUT.value,
        AttendancePunch.status != PunchStatus.REJECTED.value,
    )
    if student_id is not None:
        query = query.filter(AttendancePunch.student_id == student_id)
    if since is not None:
        query = query.filter(AttendancePunch.attendance_date >= since)
    if until is not None:
        query = query.filter(AttendancePunch.attendance_date <= until)
    outs = query.order_by(AttendancePunch.student_id.asc(), AttendancePunch.occurred_at.asc()).all()

    latest_by_in: dict[int, AttendancePunch] = {}
    unmatched = 0
    for out in outs:
        punch_in = find_session_in(out)
        if punch_in is None:
            unmatched += 1
            continue
        latest_by_in[punch_in.id] = out

    frozen = skipped = failed = 0
    for in_id, out in latest_by_in.items():
        out_id = out.id
        if only_missing:
            exists = db.session.query(LedgerEntry.id).filter_by(in_punch_id=in_id, out_punch_id=out_id).first()
            if exists:
                skipped += 1
                continue
        try:
            if freeze_out_punch(out) is not None:
                frozen += 1
        except Exception:
            db.session.rollback()
            failed += 1
            current_app.logger.exception("Ledger rebuild failed for out punch %s", out_id)

    return {
        "processed": len(outs),
        "sessions": len(latest_by_in),
        "frozen": frozen,
        "skipped": skipped,
        "unmatched": unmatched,
        "failed": failed,
    }


def list_ledger_entries(
    *,
    student_id: int,
    start: date | None = None,
    end: date | None = None,
) -> list[LedgerEntry]:
    query = db.session.query(LedgerEntry).filter(LedgerEntry.student_id == student_id)
    if start is not None:
        query = query.filter(LedgerEntry.attendance_date >= start)
    if end is not None:
        query = query.filter(LedgerEntry.attendance_date <= end)
    return query.order_by(LedgerEntry.attendance_date.asc(), LedgerEntry.shift_id.asc()).all()
