# Overview: Flask API routes for shift schedules, per-date overrides and overtime authorizations.

"""
Shift Routes

- GET /api/shifts?supervisor_id=&date= returns the effective schedule for a
  day with the layer each field came from (override > supervisor > global > default).
- POST /api/shifts writes the supervisor's schedule, or the global one when
  supervisor_id is omitted.
"""

from flask import Blueprint, jsonify, request

from ..errors import AttendanceError, SubjectNotFound, SupervisorNotFound
from ..services import shift_config_service
from ..services.schedule_service import build_day_schedule
from ..time_utils import civil_date, from_epoch_ms, parse_iso_date, utcnow


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _window(data: dict, key: str):
    value = data.get(key)
    if not value:
        return None
    return value.get("start"), value.get("end")


@shifts_bp.get("")
def get_shifts_route():
    supervisor_id = request.args.get("supervisor_id", type=int)
    try:
        day = parse_iso_date(request.args.get("date"))
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    day = day or civil_date(utcnow(), shift_config_service.utc_offset_minutes())

    try:
        resolved = shift_config_service.resolve_shift_config(supervisor_id, day)
        schedule = build_day_schedule(
            day,
            resolved.config,
            utc_offset_minutes=shift_config_service.utc_offset_minutes(),
        )
    except AttendanceError as e:
        return jsonify({"error": str(e), "reason": e.reason}), 400

    return jsonify({
        "supervisor_id": supervisor_id,
        "date": day.isoformat(),
        "shifts": resolved.to_dict(),
        "schedule": schedule.to_dict(),
    })


@shifts_bp.post("")
def set_shifts_route():
    data = request.get_json(silent=True) or {}
    try:
        rows = shift_config_service.set_shift_schedule(
            supervisor_id=data.get("supervisor_id"),
            am_in=data.get("am_in"),
            am_out=data.get("am_out"),
            pm_in=data.get("pm_in"),
            pm_out=data.get("pm_out"),
            ot_in=data.get("ot_in"),
            ot_out=data.get("ot_out"),
        )
    except SupervisorNotFound as e:
        return jsonify({"error": str(e)}), 404
    except AttendanceError as e:
        return jsonify({"error": str(e), "reason": e.reason}), 400

    return jsonify({"shifts": [r.to_dict() for r in rows]})


@shifts_bp.get("/overrides")
def list_overrides_route():
    supervisor_id = request.args.get("supervisor_id", type=int)
    rows = shift_config_service.list_schedule_overrides(supervisor_id)
    return jsonify({"overrides": [r.to_dict() for r in rows]})


@shifts_bp.post("/overrides")
def set_overrides_route():
    data = request.get_json(silent=True) or {}
    supervisor_id = data.get("supervisor_id")
    if not supervisor_id:
        return jsonify({"error": "supervisor_id is required"}), 400

    try:
        day = parse_iso_date(data.get("date"))
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    if day is None:
        return jsonify({"error": "date is required"}), 400

    try:
        rows = shift_config_service.set_schedule_override(
            supervisor_id=supervisor_id,
            day=day,
            am=_window(data, "am"),
            pm=_window(data, "pm"),
            ot=_window(data, "ot"),
        )
    except SupervisorNotFound as e:
        return jsonify({"error": str(e)}), 404
    except AttendanceError as e:
        return jsonify({"error": str(e), "reason": e.reason}), 400

    return jsonify({"overrides": [r.to_dict() for r in rows]}), 201


@shifts_bp.delete("/overrides")
def clear_overrides_route():
    supervisor_id = request.args.get("supervisor_id", type=int)
    try:
        day = parse_iso_date(request.args.get("date"))
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    if not supervisor_id or day is None:
        return jsonify({"error": "supervisor_id and date are required"}), 400

    deleted = shift_config_service.clear_schedule_override(supervisor_id=supervisor_id, day=day)
    return jsonify({"deleted": deleted})


@shifts_bp.get("/overtime")
def list_overtime_route():
    student_id = request.args.get("student_id", type=int)
    try:
        day = parse_iso_date(request.args.get("date"))
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400

    rows = shift_config_service.list_overtime_authorizations(student_id=student_id, day=day)
    return jsonify({"overtime": [r.to_dict() for r in rows]})


@shifts_bp.post("/overtime")
def authorize_overtime_route():
    data = request.get_json(silent=True) or {}
    student_id = data.get("student_id")
    if not student_id:
        return jsonify({"error": "student_id is required"}), 400
    if data.get("start_ms") is None or data.get("end_ms") is None:
        return jsonify({"error": "start_ms and end_ms are required"}), 400

    try:
        day = parse_iso_date(data.get("date"))
        start_at = from_epoch_ms(data["start_ms"])
        end_at = from_epoch_ms(data["end_ms"])
    except (TypeError, ValueError):
        return jsonify({"error": "date must be YYYY-MM-DD and start_ms/end_ms epoch milliseconds"}), 400
    if day is None:
        day = civil_date(start_at, shift_config_service.utc_offset_minutes())

    try:
        row = shift_config_service.authorize_overtime(
            student_id=student_id,
            day=day,
            start_at=start_at,
            end_at=end_at,
            created_by_supervisor_id=data.get("supervisor_id"),
        )
    except SubjectNotFound as e:
        return jsonify({"error": str(e)}), 404
    except AttendanceError as e:
        return jsonify({"error": str(e), "reason": e.reason}), 400

    return jsonify({"overtime": row.to_dict()}), 201
