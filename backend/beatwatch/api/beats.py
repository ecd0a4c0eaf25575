"""
Beat API endpoints.

Provides endpoints for:
- Creating, listing, editing and deleting beats
- Adding/removing personnel before acceptance starts
- Recording accept/decline responses
- Declining, reopening and ending duty
- Ingesting position fixes
- Recording and listing personnel replacements
"""

from datetime import datetime

from flask import Blueprint, request, jsonify, g

from beatwatch.api.common import (
    get_json_body,
    parse_optional_uuid,
    parse_timestamp,
    parse_uuid,
    require_actor,
)
from beatwatch.db.postgres import get_db_session
from beatwatch.errors import ValidationError
from beatwatch.services import (
    AcceptanceTracker,
    BeatRegistry,
    DutyScheduler,
    ReplacementLedger,
    ViolationDetector,
    get_projection_service,
)
from beatwatch.services.schedule import duty_duration, format_duration, format_duty_window


bp = Blueprint("beats", __name__, url_prefix="/api/v1/beats")


def format_beat_for_response(beat, roster=None) -> dict:
    """Beat snapshot plus display helpers for the duty window."""
    data = beat.to_dict()
    data["duty_window"] = format_duty_window(beat.duty_start, beat.duty_end)
    data["duty_duration"] = format_duration(duty_duration(beat.duty_start, beat.duty_end))
    if roster is not None:
        data["roster"] = roster
    return data


def _project(beat):
    get_projection_service().update_beat_state(beat.to_dict())


def _personnel_ids(values) -> list:
    if values is None:
        return []
    if not isinstance(values, list):
        raise ValidationError("personnel_ids must be a list")
    return [parse_uuid(v, "personnel_ids[]") for v in values]


# =============================================================================
# Beats
# =============================================================================

@bp.route("", methods=["GET"])
def list_beats():
    """
    List live beats, newest first.

    Query params:
        province, unit, sub_unit: scope filters
        status: lifecycle status filter
    """
    beats = BeatRegistry(get_db_session()).list_beats(
        province=request.args.get("province"),
        unit=request.args.get("unit"),
        sub_unit=request.args.get("sub_unit"),
        status=request.args.get("status"),
    )
    return jsonify({
        "ok": True,
        "beats": [format_beat_for_response(b) for b in beats],
        "count": len(beats),
    })


@bp.route("", methods=["POST"])
@require_actor
def create_beat():
    data = get_json_body()
    beat = BeatRegistry(get_db_session()).create_beat(
        name=data.get("name"),
        center_lat=data.get("center_lat"),
        center_lng=data.get("center_lng"),
        radius_m=data.get("radius_m"),
        duty_start=data.get("duty_start"),
        duty_end=data.get("duty_end"),
        personnel_ids=_personnel_ids(data.get("personnel_ids")),
        province=data.get("province"),
        unit=data.get("unit"),
        sub_unit=data.get("sub_unit"),
        address=data.get("address"),
        actor_id=g.user_id,
    )
    _project(beat)
    return jsonify({"ok": True, "beat": format_beat_for_response(beat)}), 201


@bp.route("/<beat_id>", methods=["GET"])
def get_beat(beat_id):
    registry = BeatRegistry(get_db_session())
    beat_uuid = parse_uuid(beat_id, "beat_id")
    beat = registry.get_beat(beat_uuid)
    return jsonify({
        "ok": True,
        "beat": format_beat_for_response(beat, roster=registry.roster(beat_uuid)),
    })


@bp.route("/<beat_id>", methods=["PUT"])
@require_actor
def update_beat(beat_id):
    beat = BeatRegistry(get_db_session()).update_geometry_or_schedule(
        parse_uuid(beat_id, "beat_id"),
        get_json_body(),
        actor_id=g.user_id,
    )
    _project(beat)
    return jsonify({"ok": True, "beat": format_beat_for_response(beat)})


@bp.route("/<beat_id>", methods=["DELETE"])
@require_actor
def delete_beat(beat_id):
    beat = BeatRegistry(get_db_session()).delete_beat(parse_uuid(beat_id, "beat_id"), actor_id=g.user_id)
    _project(beat)
    return jsonify({"ok": True, "beat_id": str(beat.beat_id), "deleted_at": beat.deleted_at.isoformat()})


# =============================================================================
# Membership
# =============================================================================

@bp.route("/<beat_id>/personnel", methods=["POST"])
@require_actor
def add_personnel(beat_id):
    data = get_json_body()
    beat = BeatRegistry(get_db_session()).add_personnel(
        parse_uuid(beat_id, "beat_id"),
        parse_uuid(data.get("personnel_id"), "personnel_id"),
        actor_id=g.user_id,
    )
    _project(beat)
    return jsonify({"ok": True, "beat": format_beat_for_response(beat)}), 201


@bp.route("/<beat_id>/personnel/<personnel_id>", methods=["DELETE"])
@require_actor
def remove_personnel(beat_id, personnel_id):
    beat = BeatRegistry(get_db_session()).remove_personnel(
        parse_uuid(beat_id, "beat_id"),
        parse_uuid(personnel_id, "personnel_id"),
        actor_id=g.user_id,
    )
    _project(beat)
    return jsonify({"ok": True, "beat": format_beat_for_response(beat)})


# =============================================================================
# Acceptance
# =============================================================================

@bp.route("/<beat_id>/responses", methods=["POST"])
@require_actor
def respond(beat_id):
    """
    Record an accept/decline.

    Body:
        decision: "accept" | "decline"
        reason: required when declining
        personnel_id: defaults to the caller
    """
    data = get_json_body()
    db = get_db_session()
    beat_uuid = parse_uuid(beat_id, "beat_id")
    personnel_id = parse_optional_uuid(data.get("personnel_id"), "personnel_id") or g.user_id

    assignment = AcceptanceTracker(db).respond(
        beat_uuid,
        personnel_id,
        data.get("decision"),
        reason=data.get("reason"),
        actor_id=g.user_id,
    )
    beat = BeatRegistry(db).get_beat(beat_uuid)
    _project(beat)
    return jsonify({
        "ok": True,
        "acceptance": assignment.to_dict(),
        "beat": format_beat_for_response(beat),
    })


@bp.route("/<beat_id>/acceptance", methods=["GET"])
def get_acceptance(beat_id):
    tracker = AcceptanceTracker(get_db_session())
    beat_uuid = parse_uuid(beat_id, "beat_id")
    include_removed = request.args.get("include_removed", "false").lower() == "true"
    rows = tracker.acceptance_rows(beat_uuid, include_removed=include_removed)
    return jsonify({
        "ok": True,
        "acceptance": [r.to_dict() for r in rows],
        "all_accepted": tracker.all_accepted(beat_uuid),
    })


# =============================================================================
# Lifecycle
# =============================================================================

@bp.route("/<beat_id>/decline", methods=["POST"])
@require_actor
def mark_declined(beat_id):
    beat = DutyScheduler(get_db_session()).mark_declined(parse_uuid(beat_id, "beat_id"), actor_id=g.user_id)
    _project(beat)
    return jsonify({"ok": True, "beat": format_beat_for_response(beat)})


@bp.route("/<beat_id>/reopen", methods=["POST"])
@require_actor
def reopen_beat(beat_id):
    beat = DutyScheduler(get_db_session()).reopen_beat(parse_uuid(beat_id, "beat_id"), actor_id=g.user_id)
    _project(beat)
    return jsonify({"ok": True, "beat": format_beat_for_response(beat)})


@bp.route("/<beat_id>/end-duty", methods=["POST"])
@require_actor
def end_duty(beat_id):
    beat = DutyScheduler(get_db_session()).end_duty(parse_uuid(beat_id, "beat_id"), actor_id=g.user_id)
    _project(beat)
    return jsonify({"ok": True, "beat": format_beat_for_response(beat)})


# =============================================================================
# Position fixes
# =============================================================================

@bp.route("/<beat_id>/fixes", methods=["POST"])
@require_actor
def ingest_fix(beat_id):
    """
    Evaluate a position fix.

    Body:
        lat, lng: position
        personnel_id: defaults to the caller
        timestamp: ISO-8601, defaults to now
    """
    data = get_json_body()
    db = get_db_session()
    beat_uuid = parse_uuid(beat_id, "beat_id")
    personnel_id = parse_optional_uuid(data.get("personnel_id"), "personnel_id") or g.user_id
    timestamp = parse_timestamp(data["timestamp"]) if data.get("timestamp") else datetime.utcnow()

    violation = ViolationDetector(db).ingest_fix(
        beat_uuid,
        personnel_id,
        data.get("lat"),
        data.get("lng"),
        timestamp,
    )
    if violation is None:
        return jsonify({"ok": True, "violation": None})

    beat = BeatRegistry(db).get_beat(beat_uuid)
    get_projection_service().publish_violation(violation.to_dict(), beat=beat.to_dict())
    return jsonify({"ok": True, "violation": violation.to_dict()}), 201


# =============================================================================
# Replacements
# =============================================================================

@bp.route("/<beat_id>/replacements", methods=["GET"])
def replacement_history(beat_id):
    records = ReplacementLedger(get_db_session()).history_for_beat(parse_uuid(beat_id, "beat_id"))
    return jsonify({
        "ok": True,
        "history": [r.to_dict() for r in records],
        "count": len(records),
    })


@bp.route("/<beat_id>/replacements", methods=["POST"])
@require_actor
def record_replacement(beat_id):
    """
    Record a substitution.

    Body:
        old_personnel_id: personnel leaving (null to fill a new slot)
        new_personnel_id: personnel joining (null for a pure removal)
        reason: required
    """
    data = get_json_body()
    db = get_db_session()
    beat_uuid = parse_uuid(beat_id, "beat_id")

    record = ReplacementLedger(db).record_replacement(
        beat_uuid,
        parse_optional_uuid(data.get("old_personnel_id"), "old_personnel_id"),
        parse_optional_uuid(data.get("new_personnel_id"), "new_personnel_id"),
        data.get("reason"),
        actor_id=g.user_id,
    )
    beat = BeatRegistry(db).get_beat(beat_uuid)
    _project(beat)
    return jsonify({
        "ok": True,
        "replacement": record.to_dict(),
        "beat": format_beat_for_response(beat),
    }), 201
