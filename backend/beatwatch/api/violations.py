"""
Violation API endpoints.

- GET  /api/v1/violations - List violations (filters: beat_id, status, personnel_id)
- GET  /api/v1/violations/<id> - Violation detail
- POST /api/v1/violations/<id>/acknowledge - pending -> acknowledged
- POST /api/v1/violations/<id>/resolve - pending/acknowledged -> resolved
"""

from flask import Blueprint, request, jsonify, g

from beatwatch.api.common import parse_optional_uuid, parse_uuid, require_actor
from beatwatch.db.postgres import get_db_session
from beatwatch.services import ViolationDetector, get_projection_service


bp = Blueprint("violations", __name__, url_prefix="/api/v1/violations")


@bp.route("", methods=["GET"])
def list_violations():
    violations = ViolationDetector(get_db_session()).list_violations(
        beat_id=parse_optional_uuid(request.args.get("beat_id"), "beat_id"),
        status=request.args.get("status") or None,
        personnel_id=parse_optional_uuid(request.args.get("personnel_id"), "personnel_id"),
    )
    return jsonify({
        "ok": True,
        "violations": [v.to_dict() for v in violations],
        "count": len(violations),
    })


@bp.route("/<violation_id>", methods=["GET"])
def get_violation(violation_id):
    violation = ViolationDetector(get_db_session()).get_violation(parse_uuid(violation_id, "violation_id"))
    return jsonify({"ok": True, "violation": violation.to_dict()})


@bp.route("/<violation_id>/acknowledge", methods=["POST"])
@require_actor
def acknowledge(violation_id):
    violation = ViolationDetector(get_db_session()).acknowledge(
        parse_uuid(violation_id, "violation_id"), actor_id=g.user_id
    )
    get_projection_service().publish_violation(violation.to_dict())
    return jsonify({"ok": True, "violation": violation.to_dict()})


@bp.route("/<violation_id>/resolve", methods=["POST"])
@require_actor
def resolve(violation_id):
    violation = ViolationDetector(get_db_session()).resolve(
        parse_uuid(violation_id, "violation_id"), actor_id=g.user_id
    )
    get_projection_service().publish_violation(violation.to_dict())
    return jsonify({"ok": True, "violation": violation.to_dict()})
