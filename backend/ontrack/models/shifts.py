from __future__ import annotations

from ..extensions import db
from ontrack.time_utils import to_utc_z, to_epoch_ms


SLOT_AM = "AM"
SLOT_PM = "PM"
SLOT_OT = "OT"
SLOT_DEFAULT = "DEFAULT"


class ShiftDefinition(db.Model):
    """
    Configured shift window (morning, afternoon, overtime) for a supervisor,
    or institution-wide when supervisor_id is NULL.

    WHY: Ledger entries are keyed by shift id, so every frozen session needs a
    stable definition row even when the schedule text later changes.

    DESIGN:
    - One row per (supervisor, slot). Global rows have supervisor_id NULL.
    - DEFAULT rows (09:00-17:00) are materialized lazily as the ledger key for
      sessions that match no configured window.
    - official_start / official_end are HH:MM text; parsing happens in the
      schedule builder, never here.
    """
    __tablename__ = "shift_definitions"
    __table_args__ = (
        db.UniqueConstraint("supervisor_id", "slot", name="uq_shift_definitions_supervisor_slot"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supervisor_id = db.Column(db.Integer, db.ForeignKey("supervisors.id"), nullable=True, index=True)

    # AM, PM, OT, DEFAULT
    slot = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(64), nullable=False)

    official_start = db.Column(db.String(8), nullable=True)
    official_end = db.Column(db.String(8), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    supervisor = db.relationship("Supervisor", backref=db.backref("shift_definitions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supervisor_id": self.supervisor_id,
            "slot": self.slot,
            "name": self.name,
            "official_start": self.official_start,
            "official_end": self.official_end,
            "updated_at": to_utc_z(self.updated_at),
        }


class ScheduleOverride(db.Model):
    """
    Per-date replacement of a supervisor's shift text for one slot.

    Either boundary may be NULL, in which case the next precedence layer
    (supervisor, then global, then default) supplies it.
    """
    __tablename__ = "schedule_overrides"
    __table_args__ = (
        db.UniqueConstraint("supervisor_id", "effective_date", "slot", name="uq_schedule_overrides_supervisor_date_slot"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supervisor_id = db.Column(db.Integer, db.ForeignKey("supervisors.id"), nullable=False, index=True)
    effective_date = db.Column(db.Date, nullable=False, index=True)

    # AM, PM, OT
    slot = db.Column(db.String(16), nullable=False)

    official_start = db.Column(db.String(8), nullable=True)
    official_end = db.Column(db.String(8), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supervisor_id": self.supervisor_id,
            "effective_date": self.effective_date.isoformat(),
            "slot": self.slot,
            "official_start": self.official_start,
            "official_end": self.official_end,
        }


class OvertimeAuthorization(db.Model):
    """
    Explicit overtime window for one student on one date.

    Replaces the configured OT text for that date with absolute instants
    (UTC-naive), so it may start on one civil day and end on the next.
    """
    __tablename__ = "overtime_authorizations"
    __table_args__ = (
        db.UniqueConstraint("student_id", "effective_date", name="uq_overtime_authorizations_student_date"),
        db.CheckConstraint("end_at > start_at", name="ck_overtime_authorizations_window"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False, index=True)
    effective_date = db.Column(db.Date, nullable=False, index=True)

    start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    end_at = db.Column(db.DateTime(timezone=True), nullable=False)

    created_by_supervisor_id = db.Column(db.Integer, db.ForeignKey("supervisors.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    student = db.relationship("Student", backref=db.backref("overtime_authorizations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "effective_date": self.effective_date.isoformat(),
            "start_at": to_utc_z(self.start_at),
            "end_at": to_utc_z(self.end_at),
            "start_ms": to_epoch_ms(self.start_at),
            "end_ms": to_epoch_ms(self.end_at),
            "created_by_supervisor_id": self.created_by_supervisor_id,
        }
