from __future__ import annotations

from ..extensions import db
from ontrack.time_utils import to_utc_z


class Supervisor(db.Model):
    """
    Supervisor owning a trainee roster and (optionally) its own shift schedule.

    Administration of supervisors lives outside this service; only the fields
    the attendance engine reads are modeled.
    """
    __tablename__ = "supervisors"
    __table_args__ = (
        db.UniqueConstraint("idnumber", name="uq_supervisors_idnumber"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    idnumber = db.Column(db.String(64), nullable=False)
    firstname = db.Column(db.String(128), nullable=True)
    lastname = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "idnumber": self.idnumber,
            "firstname": self.firstname,
            "lastname": self.lastname,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Student(db.Model):
    """
    Trainee whose punches are accounted. The `subject` of every punch.
    """
    __tablename__ = "students"
    __table_args__ = (
        db.UniqueConstraint("idnumber", name="uq_students_idnumber"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    idnumber = db.Column(db.String(64), nullable=False)
    firstname = db.Column(db.String(128), nullable=True)
    lastname = db.Column(db.String(128), nullable=True)
    supervisor_id = db.Column(db.Integer, db.ForeignKey("supervisors.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supervisor = db.relationship("Supervisor", backref=db.backref("students", lazy=True))

    @property
    def display_name(self) -> str:
        name = f"{self.firstname or ''} {self.lastname or ''}".strip()
        return name or self.idnumber

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "idnumber": self.idnumber,
            "firstname": self.firstname,
            "lastname": self.lastname,
            "supervisor_id": self.supervisor_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
