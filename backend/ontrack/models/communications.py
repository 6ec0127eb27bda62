from __future__ import annotations

from ..extensions import db
from ontrack.time_utils import to_utc_z


class Notification(db.Model):
    """
    Outbox row for a downstream notification.

    Delivery (web push, e-mail) happens elsewhere; the attendance engine only
    writes rows and never waits on delivery.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_recipient_read", "recipient_idnumber", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    recipient_idnumber = db.Column(db.String(64), nullable=False)

    # attendance_punch, attendance_approved
    notification_type = db.Column(db.String(32), nullable=False)
    title = db.Column(db.String(128), nullable=False)
    message = db.Column(db.Text, nullable=False)

    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=True, index=True)
    punch_kind = db.Column(db.String(8), nullable=True)
    punch_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recipient_idnumber": self.recipient_idnumber,
            "type": self.notification_type,
            "title": self.title,
            "message": self.message,
            "student_id": self.student_id,
            "punch_kind": self.punch_kind,
            "punch_at": to_utc_z(self.punch_at),
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }
