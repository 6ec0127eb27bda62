"""
Attendance engine error kinds.

Every error carries a machine-readable `reason` so the ingestion boundary can
answer with a stable string; human-facing wording is the caller's job.
"""

from __future__ import annotations


class AttendanceError(ValueError):
    """Base class for engine errors surfaced to callers."""
    reason = "attendance_error"


class InvalidConfig(AttendanceError):
    """Malformed HH:MM shift text."""
    reason = "invalid_config"


class DuplicateRequest(AttendanceError):
    """Same-kind punch already recorded inside the duplicate window."""
    reason = "duplicate_request"


class SubjectNotFound(AttendanceError):
    """Unknown student id / idnumber."""
    reason = "subject_not_found"


class PunchNotFound(AttendanceError):
    reason = "punch_not_found"


class InvalidStatusTransition(AttendanceError):
    reason = "invalid_status_transition"


class InvalidPunch(AttendanceError):
    """400-level input problem at the punch boundary."""
    reason = "invalid_punch"


class SupervisorNotFound(AttendanceError):
    reason = "supervisor_not_found"
