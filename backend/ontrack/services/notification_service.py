# Overview: Writes attendance notifications to the outbox table; delivery happens elsewhere.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import AttendancePunch, Notification, Student


TYPE_ATTENDANCE_PUNCH = "attendance_punch"
TYPE_ATTENDANCE_APPROVED = "attendance_approved"

_KIND_LABELS = {"in": "Time In", "out": "Time Out"}


def _write(notification: Notification) -> Notification | None:
    # The punch is already committed; an outbox failure must not surface.
    try:
        db.session.add(notification)
        db.session.commit()
        return notification
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to write %s notification for student %s",
            notification.notification_type, notification.student_id,
        )
        return None


def notify_punch(student: Student, punch: AttendancePunch) -> Notification | None:
    """Supervisor-facing `{subject_id, kind, instant}` event for an accepted punch."""
    supervisor = student.supervisor
    if supervisor is None:
        return None

    label = _KIND_LABELS.get(punch.kind, punch.kind)
    return _write(Notification(
        recipient_idnumber=supervisor.idnumber,
        notification_type=TYPE_ATTENDANCE_PUNCH,
        title=f"{student.display_name} - {label}",
        message=f"{student.display_name} recorded a {label.lower()}.",
        student_id=student.id,
        punch_kind=punch.kind,
        punch_at=punch.occurred_at,
    ))


def notify_approved(punch: AttendancePunch) -> Notification | None:
    student = db.session.get(Student, punch.student_id)
    if student is None:
        return None

    label = _KIND_LABELS.get(punch.kind, punch.kind)
    return _write(Notification(
        recipient_idnumber=student.idnumber,
        notification_type=TYPE_ATTENDANCE_APPROVED,
        title="Attendance Approved",
        message=f"Your {label.lower()} has been approved by your supervisor.",
        student_id=student.id,
        punch_kind=punch.kind,
        punch_at=punch.occurred_at,
    ))


def list_notifications(recipient_idnumber: str, *, unread_only: bool = False) -> list[Notification]:
    query = db.session.query(Notification).filter_by(recipient_idnumber=recipient_idnumber)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
