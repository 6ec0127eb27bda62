# Overview: Flask API routes for the hours ledger; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..errors import SubjectNotFound
from ..services import ledger_service, punch_service
from ..time_utils import parse_iso_date

"""
Ledger semantics:
- Rows are frozen when the out punch is recorded; reads never recompute them.
- start/end filter on attendance_date and are inclusive.
- POST /rebuild is the repair pass for rows a failed freeze never wrote.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("")
def list_ledger_route():
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
    except SubjectNotFound as e:
        return jsonify({"error": str(e)}), 404

    entries = ledger_service.list_ledger_entries(student_id=student.id, start=start, end=end)
    total_minutes = sum(e.worked_minutes for e in entries)
    return jsonify({
        "entries": [e.to_dict() for e in entries],
        "total_minutes": total_minutes,
        "total_hours": round(total_minutes / 60, 4),
    })


@ledger_bp.post("/rebuild")
def rebuild_ledger_route():
    data = request.get_json(silent=True) or {}

    try:
        since = parse_iso_date(data.get("since"))
        until = parse_iso_date(data.get("until"))
    except ValueError:
        return jsonify({"error": "since and until must be YYYY-MM-DD"}), 400

    student_id = None
    subject = data.get("idnumber") or data.get("student_id")
    if subject:
        try:
            student_id = punch_service.resolve_student(subject).id
        except SubjectNotFound as e:
            return jsonify({"error": str(e)}), 404

    result = ledger_service.rebuild_ledger(
        student_id=student_id,
        since=since,
        until=until,
        only_missing=not data.get("all", False),
    )
    current_app.logger.info("Ledger rebuild finished: %s", result)
    return jsonify({"rebuild": result})
