from __future__ import annotations

import enum

from ..extensions import db
from ontrack.time_utils import to_utc_z, to_epoch_ms


class PunchKind(str, enum.Enum):
    IN = "in"
    OUT = "out"


class PunchStatus(str, enum.Enum):
    RAW = "raw"
    VALIDATED = "validated"
    REJECTED = "rejected"
    OFFICIAL = "official"
    ADJUSTED = "adjusted"


# Allowed supervisor/administrator status moves. ADJUSTED is reached only
# through an administrator correction of instant/kind.
PUNCH_STATUS_TRANSITIONS: dict[PunchStatus, frozenset[PunchStatus]] = {
    PunchStatus.RAW: frozenset({PunchStatus.VALIDATED, PunchStatus.REJECTED, PunchStatus.ADJUSTED}),
    PunchStatus.VALIDATED: frozenset({PunchStatus.ADJUSTED, PunchStatus.REJECTED}),
    PunchStatus.REJECTED: frozenset({PunchStatus.RAW}),
    PunchStatus.OFFICIAL: frozenset({PunchStatus.ADJUSTED}),
    PunchStatus.ADJUSTED: frozenset({PunchStatus.ADJUSTED, PunchStatus.REJECTED}),
}

# Statuses whose punches count as supervisor-approved time
APPROVED_STATUSES = frozenset({PunchStatus.VALIDATED, PunchStatus.OFFICIAL, PunchStatus.ADJUSTED})

# validated_by marker for synthesized (virtual) out punches
AUTO_CLOSE_VALIDATOR = "SYSTEM_AUTO_CLOSE"


class AttendancePunch(db.Model):
    """
    A single clock-in or clock-out event.

    LIFECYCLE:
    - raw: recorded by the trainee
    - official: entered manually by a validator
    - validated / rejected: supervisor decision
    - adjusted: instant or kind corrected by an administrator (ledger re-frozen)

    IMMUTABLE: occurred_at and kind change only through an administrator
    correction. attendance_date is the civil day the punch is accounted to;
    an overnight out belongs to the day its session started.
    """
    __tablename__ = "attendance_punches"
    __table_args__ = (
        db.Index("ix_attendance_punches_student_date", "student_id", "attendance_date"),
        db.Index("ix_attendance_punches_student_kind_received", "student_id", "kind", "received_at"),
        # dedupe_bucket is NULL unless the strict duplicate guard is enabled;
        # NULLs never collide.
        db.UniqueConstraint("student_id", "kind", "dedupe_bucket", name="uq_attendance_punches_dedupe"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False, index=True)

    # in / out
    kind = db.Column(db.String(8), nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)
    attendance_date = db.Column(db.Date, nullable=False)

    # Server receipt time (duplicate guard looks at this, not occurred_at)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_authorized_overtime = db.Column(db.Boolean, nullable=False, default=False)
    shift_id = db.Column(db.Integer, db.ForeignKey("shift_definitions.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=PunchStatus.RAW.value, index=True)
    validated_by = db.Column(db.String(64), nullable=True)
    validated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Opaque reference to externally hosted photo evidence
    evidence_url = db.Column(db.Text, nullable=True)

    dedupe_bucket = db.Column(db.BigInteger, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    student = db.relationship("Student", backref=db.backref("punches", lazy=True))
    shift = db.relationship("ShiftDefinition")

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "type": self.kind,
            "ts": to_epoch_ms(self.occurred_at),
            "occurred_at": to_utc_z(self.occurred_at),
            "attendance_date": self.attendance_date.isoformat(),
            "received_at": to_utc_z(self.received_at),
            "is_authorized_overtime": self.is_authorized_overtime,
            "shift_id": self.shift_id,
            "status": self.status,
            "validated_by": self.validated_by,
            "validated_at": to_utc_z(self.validated_at) if self.validated_at else None,
            "evidence_url": self.evidence_url,
            "created_at": to_utc_z(self.created_at),
        }
