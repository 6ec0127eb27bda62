from __future__ import annotations

from ..extensions import db
from ontrack.time_utils import to_utc_z


LEDGER_STATUS_FROZEN = "FROZEN"
LEDGER_STATUS_ADJUSTED = "ADJUSTED"


class LedgerEntry(db.Model):
    """
    Frozen billable hours for one (student, date, shift).

    WHY: Hours are computed once, when the out punch is recorded, together
    with the official boundaries used. Later schedule edits never reach back
    into history; only an administrator correction of the source punches
    overwrites the row (status ADJUSTED).

    DESIGN:
    - Written through a storage-level upsert on uq_ledger_entries_key.
    - official_time_in/out are NULL when the hours were not clamped
      (authorized overtime or no governing shift).
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.UniqueConstraint("student_id", "attendance_date", "shift_id", name="uq_ledger_entries_key"),
        db.Index("ix_ledger_entries_student_date", "student_id", "attendance_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False)
    attendance_date = db.Column(db.Date, nullable=False)
    shift_id = db.Column(db.Integer, db.ForeignKey("shift_definitions.id"), nullable=False, index=True)

    # Rounded to the whole minute
    hours = db.Column(db.Float, nullable=False)
    worked_minutes = db.Column(db.Integer, nullable=False)

    official_time_in = db.Column(db.DateTime(timezone=True), nullable=True)
    official_time_out = db.Column(db.DateTime(timezone=True), nullable=True)

    in_punch_id = db.Column(db.Integer, db.ForeignKey("attendance_punches.id"), nullable=True)
    out_punch_id = db.Column(db.Integer, db.ForeignKey("attendance_punches.id"), nullable=True)

    # FROZEN, ADJUSTED
    status = db.Column(db.String(16), nullable=False, default=LEDGER_STATUS_FROZEN)
    frozen_at = db.Column(db.DateTime(timezone=True), nullable=False)

    shift = db.relationship("ShiftDefinition")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "attendance_date": self.attendance_date.isoformat(),
            "shift_id": self.shift_id,
            "hours": self.hours,
            "worked_minutes": self.worked_minutes,
            "official_time_in": to_utc_z(self.official_time_in),
            "official_time_out": to_utc_z(self.official_time_out),
            "in_punch_id": self.in_punch_id,
            "out_punch_id": self.out_punch_id,
            "status": self.status,
            "frozen_at": to_utc_z(self.frozen_at),
        }
