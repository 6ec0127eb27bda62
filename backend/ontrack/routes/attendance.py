# Overview: Flask API routes for punch ingestion, validation and summaries; parses input and returns JSON responses.

"""
Attendance Routes

- POST /api/attendance answers {accepted, punch_id, computed_hours, reason}.
  A duplicate is a non-fatal 409 with reason "duplicate_request".
- Timestamps cross the API as epoch milliseconds ("ts"); dates as YYYY-MM-DD.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import (
    AttendanceError,
    DuplicateRequest,
    InvalidPunch,
    InvalidStatusTransition,
    PunchNotFound,
    SubjectNotFound,
)
from ..services import punch_service, summary_service
from ..services.punch_service import PunchResult
from ..time_utils import parse_iso_date


attendance_bp = Blueprint("attendance", __name__, url_prefix="/api/attendance")


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


@attendance_bp.post("")
def record_punch_route():
    data = request.get_json(silent=True) or {}
    subject = data.get("idnumber") or data.get("student_id")
    kind = data.get("type") or data.get("kind")

    if not subject:
        return jsonify(PunchResult(accepted=False, reason=SubjectNotFound.reason).to_dict()), 400
    if not kind:
        return jsonify(PunchResult(accepted=False, reason=InvalidPunch.reason).to_dict()), 400

    try:
        result = punch_service.record_punch(
            subject=subject,
            kind=kind,
            instant_ms=data.get("ts"),
            authorized_overtime=_parse_bool(data.get("is_overtime") or data.get("authorized_overtime")),
            validator_id=data.get("validator_id") or data.get("validated_by"),
            evidence_url=data.get("photo_url") or data.get("evidence_url"),
        )
    except SubjectNotFound as e:
        return jsonify(PunchResult(accepted=False, reason=e.reason).to_dict()), 404
    except AttendanceError as e:
        return jsonify({**PunchResult(accepted=False, reason=e.reason).to_dict(), "error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Unexpected error recording punch for %s", subject)
        return jsonify({"accepted": False, "reason": "internal_error"}), 500

    if not result.accepted:
        return jsonify(result.to_dict()), 409
    return jsonify(result.to_dict()), 201


@attendance_bp.get("")
def list_punches_route():
    subject = request.args.get("idnumber") or request.args.get("student_id")
    if not subject:
        return jsonify({"error": "idnumber is required"}), 400

    try:
        start = parse_iso_date(request.args.get("start"))
        end = parse_iso_date(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be YYYY-MM-DD"}), 400

    try:
        student = punch_service.resolve_student(subject)
        punches = punch_service.list_punches(
            student_id=student.id,
            start=start,
            end=end,
            kind=request.args.get("type"),
        )
    except SubjectNotFound as e:
        return jsonify({"error": str(e)}), 404
    except AttendanceError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"attendance": [p.to_dict() for p in punches]})


@attendance_bp.patch("/<int:punch_id>/status")
def set_status_route(punch_id: int):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if not status:
        return jsonify({"error": "status is required"}), 400

    try:
        punch = punch_service.set_punch_status(punch_id, status, validated_by=data.get("validated_by"))
    except PunchNotFound as e:
        return jsonify({"error": str(e)}), 404
    except InvalidStatusTransition as e:
        return jsonify({"error": str(e), "reason": e.reason}), 409

    return jsonify({"punch": punch.to_dict()})


@attendance_bp.patch("/<int:punch_id>")
def edit_punch_route(punch_id: int):
    data = request.get_json(silent=True) or {}
    if data.get("ts") is None and data.get("type") is None:
        return jsonify({"error": "ts or type is required"}), 400

    try:
        punch = punch_service.edit_punch(
            punch_id,
            instant_ms=data.get("ts"),
            kind=data.get("type"),
            edited_by=data.get("edited_by"),
        )
    except PunchNotFound as e:
        return jsonify({"error": str(e)}), 404
    except DuplicateRequest as e:
        return jsonify({"error": str(e), "reason": e.reason}), 409
    except InvalidStatusTransition as e:
        return jsonify({"error": str(e), "reason": e.reason}), 409
    except AttendanceError as e:
        return jsonify({"error": str(e), "reason": e.reason}), 400

    return jsonify({"punch": punch.to_dict()})


@attendance_bp.get("/summary")
def summary_route():
    subject = request.args.get("idnumber") or request.args.get("student_id")
    if not subject:
        return jsonify({"error": "idnumber is required"}), 400

    try:
        day = parse_iso_date(request.args.get("date"))
        start = parse_iso_date(request.args.get("start"))
        end = parse_iso_date(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "date, start and end must be YYYY-MM-DD"}), 400

    try:
        student = punch_service.resolve_student(subject)
    except SubjectNotFound as e:
        return jsonify({"error": str(e)}), 404

    if day is None and (start is None or end is None):
        return jsonify({"error": "date, or start and end, is required"}), 400

    try:
        if day is not None:
            summary = summary_service.summarize_day(student, day)
        else:
            summary = summary_service.summarize_range(student, start, end)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"summary": summary})
