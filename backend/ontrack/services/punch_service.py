# Overview: Service-layer operations for punch ingestion, validation and administrator corrections.

"""
Punch Ingestion

WRITE PATH (one request = one unit of work):
1. Resolve the student (SubjectNotFound otherwise)
2. Duplicate guard on server receipt time (DuplicateRequest, nothing stored)
3. Persist the raw punch with its session date and governing shift
4. Out punches: freeze the ledger row (best effort, never undoes step 3)
5. Supervisor notification (best effort)

The duplicate check is read-then-write. Two racing requests can both pass it;
ATTENDANCE_STRICT_DUPLICATE_GUARD adds a storage constraint on
(student, kind, 15 s bucket of the instant) that closes the race.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    DuplicateRequest,
    InvalidPunch,
    InvalidStatusTransition,
    PunchNotFound,
    SubjectNotFound,
)
from ..extensions import db
from ..models import AttendancePunch, Student
from ..models.attendance import (
    APPROVED_STATUSES,
    PUNCH_STATUS_TRANSITIONS,
    PunchKind,
    PunchStatus,
)
from ..models.shifts import SLOT_OT
from ..time_utils import civil_date, from_epoch_ms, to_epoch_ms, utcnow
from . import ledger_service, notification_service
from .concurrency import run_with_retry
from .schedule_service import classify_punch
from .shift_config_service import (
    WINDOW_TO_SLOT,
    ensure_shift_definition,
    schedule_for_student,
    utc_offset_minutes,
)


DEFAULT_DUPLICATE_WINDOW_SECONDS = 15


@dataclass(frozen=True)
class PunchResult:
    accepted: bool
    punch_id: int | None = None
    computed_hours: float | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "punch_id": self.punch_id,
            "computed_hours": self.computed_hours,
            "reason": self.reason,
        }


def _duplicate_window() -> timedelta:
    seconds = current_app.config.get("ATTENDANCE_DUPLICATE_WINDOW_SECONDS", DEFAULT_DUPLICATE_WINDOW_SECONDS)
    return timedelta(seconds=int(seconds))


def _strict_guard_enabled() -> bool:
    return bool(current_app.config.get("ATTENDANCE_STRICT_DUPLICATE_GUARD", False))


def dedupe_bucket(instant: datetime) -> int:
    window_ms = int(_duplicate_window().total_seconds() * 1000)
    return to_epoch_ms(instant) // window_ms


def resolve_student(subject) -> Student:
    """Look a student up by idnumber, then by primary key."""
    if subject is None or str(subject).strip() == "":
        raise SubjectNotFound("Student is required")

    student = db.session.query(Student).filter_by(idnumber=str(subject).strip()).first()
    if student is None and str(subject).strip().isdigit():
        student = db.session.get(Student, int(subject))
    if student is None:
        raise SubjectNotFound(f"Student {subject} not found")
    return student


def get_punch(punch_id: int) -> AttendancePunch:
    punch = db.session.get(AttendancePunch, punch_id)
    if punch is None:
        raise PunchNotFound(f"Punch {punch_id} not found")
    return punch


def _parse_kind(kind) -> PunchKind:
    try:
        return PunchKind(str(kind).strip().lower())
    except ValueError:
        raise InvalidPunch("type must be 'in' or 'out'")


def check_duplicate(student_id: int, kind: str, received_at: datetime) -> None:
    """Raise DuplicateRequest if a same-kind punch was received inside the trailing window."""
    since = received_at - _duplicate_window()
    recent = db.session.query(AttendancePunch.id).filter(
        AttendancePunch.student_id == student_id,
        AttendancePunch.kind == kind,
        AttendancePunch.received_at >= since,
        AttendancePunch.received_at <= received_at,
    ).first()
    if recent:
        current_app.logger.info(
            "Duplicate %s punch rejected for student %s (punch %s inside window)",
            kind, student_id, recent.id,
        )
        raise DuplicateRequest("Punch already recorded")


def _latest_in(student_id: int, day: date, before: datetime) -> AttendancePunch | None:
    return db.session.query(AttendancePunch).filter(
        AttendancePunch.student_id == student_id,
        AttendancePunch.attendance_date == day,
        AttendancePunch.kind == PunchKind.IN.value,
        AttendancePunch.status != PunchStatus.REJECTED.value,
        AttendancePunch.occurred_at < before,
    ).order_by(AttendancePunch.occurred_at.desc()).first()


def _closed_between(student_id: int, start: datetime, end: datetime, exclude_id: int | None = None) -> bool:
    query = db.session.query(AttendancePunch.id).filter(
        AttendancePunch.student_id == student_id,
        AttendancePunch.kind == PunchKind.OUT.value,
        AttendancePunch.status != PunchStatus.REJECTED.value,
        AttendancePunch.occurred_at > start,
        AttendancePunch.occurred_at < end,
    )
    if exclude_id is not None:
        query = query.filter(AttendancePunch.id != exclude_id)
    return query.first() is not None


def session_date_for_out(student: Student, occurred_at: datetime, *, exclude_id: int | None = None) -> date:
    """
    Civil day an out punch is accounted to.

    An out after midnight belongs to the previous day when that day still has
    an open in and the out falls before that day's latest official end
    (overnight shifts). Otherwise it is the out's own civil day.
    """
    day = civil_date(occurred_at, utc_offset_minutes())
    if _latest_in(student.id, day, occurred_at) is not None:
        return day

    previous = day - timedelta(days=1)
    open_in = _latest_in(student.id, previous, occurred_at)
    if open_in is None:
        return day
    if _closed_between(student.id, open_in.occurred_at, occurred_at, exclude_id):
        return day

    schedule = schedule_for_student(student, previous)
    latest_end = max(schedule.am_out, schedule.pm_out, schedule.ot_end)
    return previous if occurred_at <= latest_end else day


def _shift_for_in(student: Student, occurred_at: datetime, day: date, authorized_overtime: bool) -> int | None:
    if authorized_overtime:
        return ensure_shift_definition(student.supervisor_id, SLOT_OT).id
    window = classify_punch(occurred_at, schedule_for_student(student, day))
    if window is None:
        return None
    return ensure_shift_definition(student.supervisor_id, WINDOW_TO_SLOT[window]).id


def _placement(student: Student, kind: PunchKind, occurred_at: datetime, authorized_overtime: bool, exclude_id=None):
    """(attendance_date, shift_id) for a punch; may flush new shift definitions."""
    if kind == PunchKind.IN:
        day = civil_date(occurred_at, utc_offset_minutes())
        return day, _shift_for_in(student, occurred_at, day, authorized_overtime)

    day = session_date_for_out(student, occurred_at, exclude_id=exclude_id)
    session_in = _latest_in(student.id, day, occurred_at)
    return day, session_in.shift_id if session_in else None


def record_punch(
    *,
    subject,
    kind,
    instant_ms: int | None = None,
    authorized_overtime: bool = False,
    validator_id: str | None = None,
    evidence_url: str | None = None,
    received_at: datetime | None = None,
) -> PunchResult:
    """
    Ingest one punch.

    Raises SubjectNotFound / InvalidPunch for bad input. Duplicates come back
    as a non-accepted PunchResult with reason "duplicate_request".
    """
    student = resolve_student(subject)
    punch_kind = _parse_kind(kind)
    received_at = received_at or utcnow()

    if instant_ms is None:
        occurred_at = received_at
    else:
        try:
            occurred_at = from_epoch_ms(instant_ms)
        except (TypeError, ValueError, OverflowError):
            raise InvalidPunch("ts must be epoch milliseconds")

    try:
        check_duplicate(student.id, punch_kind.value, received_at)
    except DuplicateRequest as exc:
        return PunchResult(accepted=False, reason=exc.reason)

    # Shift rows are materialized before the punch is staged; see ensure_shift_definition.
    attendance_date, shift_id = _placement(student, punch_kind, occurred_at, bool(authorized_overtime))

    status = PunchStatus.OFFICIAL if validator_id else PunchStatus.RAW

    def _op() -> AttendancePunch:
        row = AttendancePunch(
            student_id=student.id,
            kind=punch_kind.value,
            occurred_at=occurred_at,
            attendance_date=attendance_date,
            received_at=received_at,
            is_authorized_overtime=bool(authorized_overtime),
            shift_id=shift_id,
            status=status.value,
            validated_by=validator_id or None,
            validated_at=received_at if validator_id else None,
            evidence_url=evidence_url or None,
            dedupe_bucket=dedupe_bucket(occurred_at) if _strict_guard_enabled() else None,
        )
        db.session.add(row)
        db.session.commit()
        return row

    try:
        punch = run_with_retry(_op)
    except IntegrityError:
        db.session.rollback()
        if not _strict_guard_enabled():
            raise
        current_app.logger.info(
            "Duplicate %s punch rejected for student %s (dedupe bucket)",
            punch_kind.value, student.id,
        )
        return PunchResult(accepted=False, reason=DuplicateRequest.reason)

    computed_hours = None
    if punch_kind == PunchKind.OUT:
        entry = ledger_service.safe_freeze_out_punch(punch)
        if entry is not None:
            computed_hours = entry.hours

    notification_service.notify_punch(student, punch)

    return PunchResult(accepted=True, punch_id=punch.id, computed_hours=computed_hours)


def _parse_status(value) -> PunchStatus:
    try:
        return PunchStatus(str(value).strip().lower())
    except ValueError:
        raise InvalidStatusTransition(f"Unknown status: {value}")


def _check_transition(current: str, target: PunchStatus) -> None:
    allowed = PUNCH_STATUS_TRANSITIONS.get(PunchStatus(current), frozenset())
    if target not in allowed:
        raise InvalidStatusTransition(f"Cannot move punch from {current} to {target.value}")


def set_punch_status(punch_id: int, status, *, validated_by: str | None = None) -> AttendancePunch:
    """
    Supervisor validation / rejection.

    `adjusted` is reserved for edit_punch. Rejecting (or restoring) a punch
    changes which sessions exist, so its ledger rows are re-frozen.
    """
    target = _parse_status(status)
    if target == PunchStatus.ADJUSTED:
        raise InvalidStatusTransition("Use a punch correction to adjust a punch")

    def _op() -> tuple[AttendancePunch, str]:
        punch = get_punch(punch_id)
        _check_transition(punch.status, target)
        previous = punch.status
        punch.status = target.value
        punch.validated_by = validated_by
        punch.validated_at = utcnow()
        db.session.commit()
        return punch, previous

    punch, previous = run_with_retry(_op)
    current_app.logger.info("Punch %s status %s -> %s by %s", punch.id, previous, punch.status, validated_by)

    if PunchStatus.REJECTED.value in (previous, punch.status):
        _safe_refreeze(punch)

    if target in APPROVED_STATUSES:
        notification_service.notify_approved(punch)

    return punch


def _safe_refreeze(punch: AttendancePunch) -> None:
    try:
        ledger_service.refreeze_after_edit(punch)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to re-freeze ledger after change to punch %s", punch.id)


def edit_punch(
    punch_id: int,
    *,
    instant_ms: int | None = None,
    kind=None,
    edited_by: str | None = None,
) -> AttendancePunch:
    """Administrator correction of instant and/or kind; status becomes adjusted."""
    punch = get_punch(punch_id)
    _check_transition(punch.status, PunchStatus.ADJUSTED)

    new_kind = _parse_kind(kind) if kind is not None else PunchKind(punch.kind)
    if instant_ms is not None:
        try:
            new_instant = from_epoch_ms(instant_ms)
        except (TypeError, ValueError, OverflowError):
            raise InvalidPunch("ts must be epoch milliseconds")
    else:
        new_instant = punch.occurred_at

    student = db.session.get(Student, punch.student_id)
    attendance_date, shift_id = _placement(
        student, new_kind, new_instant, punch.is_authorized_overtime, exclude_id=punch.id,
    )

    punch.kind = new_kind.value
    punch.occurred_at = new_instant
    punch.attendance_date = attendance_date
    punch.shift_id = shift_id
    punch.status = PunchStatus.ADJUSTED.value
    punch.validated_by = edited_by
    punch.validated_at = utcnow()
    bucketed = punch.dedupe_bucket is not None
    if bucketed:
        punch.dedupe_bucket = dedupe_bucket(new_instant)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        if not bucketed:
            raise
        current_app.logger.info("Correction of punch %s collides with a recorded %s punch", punch_id, new_kind.value)
        raise DuplicateRequest(f"A {new_kind.value} punch is already recorded at that time")

    current_app.logger.info("Punch %s corrected by %s", punch.id, edited_by)
    _safe_refreeze(punch)
    return punch


def list_punches(
    *,
    student_id: int,
    start: date | None = None,
    end: date | None = None,
    kind: str | None = None,
    include_rejected: bool = True,
) -> list[AttendancePunch]:
    query = db.session.query(AttendancePunch).filter(AttendancePunch.student_id == student_id)
    if start is not None:
        query = query.filter(AttendancePunch.attendance_date >= start)
    if end is not None:
        query = query.filter(AttendancePunch.attendance_date <= end)
    if kind is not None:
        query = query.filter(AttendancePunch.kind == _parse_kind(kind).value)
    if not include_rejected:
        query = query.filter(AttendancePunch.status != PunchStatus.REJECTED.value)
    return query.order_by(AttendancePunch.occurred_at.asc(), AttendancePunch.id.asc()).all()
