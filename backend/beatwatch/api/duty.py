"""
Duty API endpoints.

- POST /api/v1/duty/tick - Run the scheduled-end check once (for an external
  cron when the in-process ticker is disabled)
"""

from flask import Blueprint, jsonify

from beatwatch.api.common import require_actor
from beatwatch.db.postgres import get_db_session
from beatwatch.services import BeatRegistry, DutyScheduler, get_projection_service


bp = Blueprint("duty", __name__, url_prefix="/api/v1/duty")


@bp.route("/tick", methods=["POST"])
@require_actor
def tick():
    db = get_db_session()
    completed = DutyScheduler(db).complete_due_beats()

    registry = BeatRegistry(db)
    projection = get_projection_service()
    for beat_id in completed:
        projection.update_beat_state(registry.get_beat(beat_id).to_dict())

    return jsonify({
        "ok": True,
        "completed": [str(b) for b in completed],
        "count": len(completed),
    })
