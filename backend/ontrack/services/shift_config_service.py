# Overview: Service-layer operations for shift configuration; resolves layered schedules and manages shift rows.

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidConfig, SubjectNotFound, SupervisorNotFound
from ..extensions import db
from ..models import OvertimeAuthorization, ScheduleOverride, ShiftDefinition, Student, Supervisor
from ..models.shifts import SLOT_AM, SLOT_DEFAULT, SLOT_OT, SLOT_PM
from .schedule_service import (
    DEFAULT_SHIFT_CONFIG,
    DEFAULT_UTC_OFFSET_MINUTES,
    DaySchedule,
    OvertimeWindow,
    ShiftConfig,
    build_day_schedule,
    normalize_hhmm,
)


"""
Shift configuration resolution (authoritative)

Precedence, per field, highest first:
  per-date override -> supervisor configuration -> global configuration -> default

- Every field resolves independently; partial layers are legal.
- Inputs are re-read on every call. Nothing is cached across requests.
- A layer's NULL/blank value means "not set here", never "empty window".
"""


SOURCE_OVERRIDE = "override"
SOURCE_SUPERVISOR = "supervisor"
SOURCE_GLOBAL = "global"
SOURCE_DEFAULT = "default"
PRECEDENCE = [SOURCE_OVERRIDE, SOURCE_SUPERVISOR, SOURCE_GLOBAL, SOURCE_DEFAULT]

# Window name used by the schedule builder -> stored slot
WINDOW_TO_SLOT = {"am": SLOT_AM, "pm": SLOT_PM, "ot": SLOT_OT}
SLOT_TO_WINDOW = {v: k for k, v in WINDOW_TO_SLOT.items()}

SLOT_FIELDS = {
    SLOT_AM: ("am_in", "am_out"),
    SLOT_PM: ("pm_in", "pm_out"),
    SLOT_OT: ("ot_in", "ot_out"),
}

SLOT_NAMES = {
    SLOT_AM: "Morning Shift",
    SLOT_PM: "Afternoon Shift",
    SLOT_OT: "Overtime Shift",
    SLOT_DEFAULT: "Default Shift",
}

DEFAULT_SHIFT_START = "09:00"
DEFAULT_SHIFT_END = "17:00"


@dataclass(frozen=True)
class ResolvedShiftConfig:
    """Fully populated ShiftConfig plus the layer each field came from."""
    config: ShiftConfig
    sources: dict

    def to_dict(self) -> dict:
        return {"config": self.config.to_dict(), "sources": dict(self.sources)}


def utc_offset_minutes() -> int:
    return int(current_app.config.get("ATTENDANCE_UTC_OFFSET_MINUTES", DEFAULT_UTC_OFFSET_MINUTES))


def _config_from_rows(rows) -> ShiftConfig:
    values = {}
    for row in rows:
        names = SLOT_FIELDS.get(row.slot)
        if not names:
            continue
        values[names[0]] = row.official_start
        values[names[1]] = row.official_end
    return ShiftConfig(**values)


def global_shift_config() -> ShiftConfig:
    rows = db.session.query(ShiftDefinition).filter(ShiftDefinition.supervisor_id.is_(None)).all()
    return _config_from_rows(rows)


def supervisor_shift_config(supervisor_id: int | None) -> ShiftConfig:
    if supervisor_id is None:
        return ShiftConfig()
    rows = db.session.query(ShiftDefinition).filter_by(supervisor_id=supervisor_id).all()
    return _config_from_rows(rows)


def override_shift_config(supervisor_id: int | None, day: date) -> ShiftConfig:
    if supervisor_id is None:
        return ShiftConfig()
    rows = db.session.query(ScheduleOverride).filter_by(
        supervisor_id=supervisor_id,
        effective_date=day,
    ).all()
    return _config_from_rows(rows)


def resolve_layers(layers: dict) -> ResolvedShiftConfig:
    """
    Apply PRECEDENCE to already-loaded layers ({source: ShiftConfig}).

    Kept free of DB access so the precedence rule can be exercised directly.
    """
    values = {}
    sources = {}
    for f in fields(ShiftConfig):
        for source in PRECEDENCE:
            layer = DEFAULT_SHIFT_CONFIG if source == SOURCE_DEFAULT else layers.get(source)
            if layer is None:
                continue
            value = getattr(layer, f.name)
            if value is not None and str(value).strip():
                values[f.name] = value
                sources[f.name] = source
                break
    return ResolvedShiftConfig(config=ShiftConfig(**values), sources=sources)


def resolve_shift_config(supervisor_id: int | None, day: date) -> ResolvedShiftConfig:
    return resolve_layers({
        SOURCE_OVERRIDE: override_shift_config(supervisor_id, day),
        SOURCE_SUPERVISOR: supervisor_shift_config(supervisor_id),
        SOURCE_GLOBAL: global_shift_config(),
    })


def get_overtime_window(student_id: int, day: date) -> OvertimeWindow | None:
    row = db.session.query(OvertimeAuthorization).filter_by(student_id=student_id, effective_date=day).first()
    if not row:
        return None
    return OvertimeWindow(start=row.start_at, end=row.end_at)


def schedule_for_student(student: Student, day: date) -> DaySchedule:
    """Fresh DaySchedule for one student's day (config + overtime authorization)."""
    resolved = resolve_shift_config(student.supervisor_id, day)
    return build_day_schedule(
        day,
        resolved.config,
        overtime=get_overtime_window(student.id, day),
        utc_offset_minutes=utc_offset_minutes(),
    )


# =============================================================================
# Shift definitions (ledger keys)
# =============================================================================

def find_shift_definition(supervisor_id: int | None, slot: str) -> ShiftDefinition | None:
    """Supervisor-owned row for the slot, else the global row."""
    if supervisor_id is not None:
        row = db.session.query(ShiftDefinition).filter_by(supervisor_id=supervisor_id, slot=slot).first()
        if row:
            return row
    if slot == SLOT_DEFAULT and supervisor_id is not None:
        return None
    return db.session.query(ShiftDefinition).filter(
        ShiftDefinition.supervisor_id.is_(None),
        ShiftDefinition.slot == slot,
    ).first()


def ensure_shift_definition(supervisor_id: int | None, slot: str) -> ShiftDefinition:
    """
    Reuse or lazily create the definition row a ledger entry is keyed on.

    Materialized AM/PM/OT rows carry no schedule text so they never shadow the
    global/default layers; DEFAULT rows carry the 09:00-17:00 placeholder.

    Flushes but does not commit. On a concurrent insert the session is rolled
    back, so call this with nothing else pending.
    """
    row = find_shift_definition(supervisor_id, slot)
    if row:
        return row

    is_default = slot == SLOT_DEFAULT
    row = ShiftDefinition(
        supervisor_id=supervisor_id,
        slot=slot,
        name=SLOT_NAMES.get(slot, slot),
        official_start=DEFAULT_SHIFT_START if is_default else None,
        official_end=DEFAULT_SHIFT_END if is_default else None,
    )
    db.session.add(row)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        row = find_shift_definition(supervisor_id, slot)
        if not row:
            raise
        return row

    current_app.logger.info(
        "Materialized %s shift definition %s for supervisor %s",
        slot, row.id, supervisor_id,
    )
    return row


# =============================================================================
# Configuration writes
# =============================================================================

def _require_supervisor(supervisor_id: int) -> Supervisor:
    supervisor = db.session.query(Supervisor).filter_by(id=supervisor_id).first()
    if not supervisor:
        raise SupervisorNotFound(f"Supervisor {supervisor_id} not found")
    return supervisor


def _window_text(start: str | None, end: str | None, label: str) -> tuple[str | None, str | None]:
    start_n = normalize_hhmm(start)
    end_n = normalize_hhmm(end)
    if (start_n is None) != (end_n is None):
        raise InvalidConfig(f"{label} needs both a start and an end time")
    return start_n, end_n


def set_shift_schedule(
    *,
    supervisor_id: int | None,
    am_in: str,
    am_out: str,
    pm_in: str,
    pm_out: str,
    ot_in: str | None = None,
    ot_out: str | None = None,
) -> list[ShiftDefinition]:
    """
    Replace the supervisor's (or, with supervisor_id None, the global) schedule.

    Morning and afternoon are required; overtime is optional and cleared when
    omitted.
    """
    if supervisor_id is not None:
        _require_supervisor(supervisor_id)

    windows = {
        SLOT_AM: _window_text(am_in, am_out, "Morning shift"),
        SLOT_PM: _window_text(pm_in, pm_out, "Afternoon shift"),
        SLOT_OT: _window_text(ot_in, ot_out, "Overtime shift"),
    }
    if None in windows[SLOT_AM] or None in windows[SLOT_PM]:
        raise InvalidConfig("Morning and afternoon shift times are required")

    rows = []
    for slot, (start, end) in windows.items():
        if supervisor_id is None:
            row = db.session.query(ShiftDefinition).filter(
                ShiftDefinition.supervisor_id.is_(None),
                ShiftDefinition.slot == slot,
            ).first()
        else:
            row = db.session.query(ShiftDefinition).filter_by(supervisor_id=supervisor_id, slot=slot).first()

        if row is None:
            if start is None:
                continue
            row = ShiftDefinition(supervisor_id=supervisor_id, slot=slot, name=SLOT_NAMES[slot])
            db.session.add(row)

        row.official_start = start
        row.official_end = end
        rows.append(row)

    db.session.commit()
    return rows


def set_schedule_override(
    *,
    supervisor_id: int,
    day: date,
    am: tuple[str | None, str | None] | None = None,
    pm: tuple[str | None, str | None] | None = None,
    ot: tuple[str | None, str | None] | None = None,
) -> list[ScheduleOverride]:
    """
    Replace all overrides for (supervisor, day). Either boundary of a window may
    be omitted; the missing one falls through to the lower layers.
    """
    _require_supervisor(supervisor_id)

    # validate before touching existing rows
    wanted = {}
    for slot, window in ((SLOT_AM, am), (SLOT_PM, pm), (SLOT_OT, ot)):
        if not window:
            continue
        start, end = normalize_hhmm(window[0]), normalize_hhmm(window[1])
        if start is None and end is None:
            continue
        wanted[slot] = (start, end)

    db.session.query(ScheduleOverride).filter_by(supervisor_id=supervisor_id, effective_date=day).delete()

    rows = []
    for slot, (start, end) in wanted.items():
        row = ScheduleOverride(
            supervisor_id=supervisor_id,
            effective_date=day,
            slot=slot,
            official_start=start,
            official_end=end,
        )
        db.session.add(row)
        rows.append(row)

    db.session.commit()
    return rows


def clear_schedule_override(*, supervisor_id: int, day: date) -> int:
    deleted = db.session.query(ScheduleOverride).filter_by(supervisor_id=supervisor_id, effective_date=day).delete()
    db.session.commit()
    return deleted


def list_schedule_overrides(supervisor_id: int | None = None) -> list[ScheduleOverride]:
    query = db.session.query(ScheduleOverride)
    if supervisor_id is not None:
        query = query.filter_by(supervisor_id=supervisor_id)
    return query.order_by(ScheduleOverride.effective_date.asc(), ScheduleOverride.slot.asc()).all()


def authorize_overtime(
    *,
    student_id: int,
    day: date,
    start_at: datetime,
    end_at: datetime,
    created_by_supervisor_id: int | None = None,
) -> OvertimeAuthorization:
    """Create or replace the student's explicit overtime window for `day`."""
    student = db.session.query(Student).filter_by(id=student_id).first()
    if not student:
        raise SubjectNotFound(f"Student {student_id} not found")
    if end_at <= start_at:
        raise InvalidConfig("Overtime end must be after its start")

    row = db.session.query(OvertimeAuthorization).filter_by(student_id=student_id, effective_date=day).first()
    if row is None:
        row = OvertimeAuthorization(student_id=student_id, effective_date=day)
        db.session.add(row)

    row.start_at = start_at
    row.end_at = end_at
    row.created_by_supervisor_id = created_by_supervisor_id

    db.session.commit()
    return row


def list_overtime_authorizations(*, student_id: int | None = None, day: date | None = None) -> list[OvertimeAuthorization]:
    query = db.session.query(OvertimeAuthorization)
    if student_id is not None:
        query = query.filter_by(student_id=student_id)
    if day is not None:
        query = query.filter_by(effective_date=day)
    return query.order_by(OvertimeAuthorization.effective_date.asc()).all()
