"""
ProjectionService: realtime Firestore projection for live-monitoring dashboards.

Mirrors beat status and violations into denormalized Firestore documents so
a dispatcher's map can subscribe instead of polling. This is OPTIONAL - runs
in no-op mode if Firestore is disabled or unavailable.

All Firestore operations are NON-BLOCKING; the authoritative state is always
the PostgreSQL row committed before the projection is queued.
"""

import threading
import logging
from datetime import datetime
from typing import Optional, Dict, Any

from beatwatch.db.firestore import (
    BEATS_COLLECTION,
    VIOLATIONS_COLLECTION,
    firestore_available,
    firestore_enabled,
    get_firestore_client,
)


class ProjectionService:
    """
    Manages Firestore projection documents.

    Document paths:
    - beats/{beat_id}
    - beats/{beat_id}/violations/{violation_id}
    """

    def __init__(self):
        self._client = None
        self._enabled = None
        self.logger = logging.getLogger("service.ProjectionService")

    @property
    def enabled(self) -> bool:
        if self._enabled is None:
            self._enabled = firestore_enabled() and firestore_available()
        return self._enabled

    @property
    def client(self):
        if self._client is None:
            self._client = get_firestore_client()
        return self._client

    def _run_async(self, func, *args, **kwargs):
        """Fire-and-forget in a daemon thread."""
        def _wrapper():
            try:
                func(*args, **kwargs)
            except Exception as e:
                self.logger.warning(f"Projection update failed: {e}")

        thread = threading.Thread(target=_wrapper, daemon=True)
        thread.start()
        return True

    def _beat_ref(self, beat_id: str):
        if not self.client:
            return None
        return self.client.collection(BEATS_COLLECTION).document(str(beat_id))

    # -------------------------------------------------------------------------
    # Beat state
    # -------------------------------------------------------------------------

    def update_beat_state(self, beat: Dict[str, Any]) -> bool:
        """
        Merge a beat snapshot (Beat.to_dict()) into beats/{beat_id}.

        Returns True if the update was queued, False if Firestore is disabled.
        """
        if not self.enabled:
            return False

        ref = self._beat_ref(beat["beat_id"])
        if not ref:
            return False

        data = {
            "name": beat.get("name"),
            "status": beat.get("status"),
            "center": beat.get("center"),
            "radius_m": beat.get("radius_m"),
            "province": beat.get("province"),
            "unit": beat.get("unit"),
            "sub_unit": beat.get("sub_unit"),
            "assigned_personnel": beat.get("assigned_personnel", []),
            "acceptance_progress": beat.get("acceptance_progress"),
            "violation_count": beat.get("violation_count", 0),
            "deleted": beat.get("deleted_at") is not None,
            "updated_at": datetime.utcnow().isoformat(),
        }

        def _do_update():
            ref.set(data, merge=True)
            self.logger.debug(f"Projected beat {beat['beat_id']} ({data['status']})")

        return self._run_async(_do_update)

    # -------------------------------------------------------------------------
    # Violations
    # -------------------------------------------------------------------------

    def publish_violation(self, violation: Dict[str, Any], beat: Optional[Dict[str, Any]] = None) -> bool:
        """Write a violation snapshot and, when given, refresh its beat's counters."""
        if not self.enabled:
            return False

        beat_ref = self._beat_ref(violation["beat_id"])
        if not beat_ref:
            return False

        ref = beat_ref.collection(VIOLATIONS_COLLECTION).document(violation["violation_id"])
        data = dict(violation)
        data["updated_at"] = datetime.utcnow().isoformat()

        def _do_update():
            ref.set(data, merge=True)
            self.logger.debug(f"Projected violation {violation['violation_id']} ({violation.get('status')})")

        queued = self._run_async(_do_update)
        if beat is not None:
            self.update_beat_state(beat)
        return queued


_projection_service = None


def get_projection_service() -> ProjectionService:
    """Process-wide ProjectionService."""
    global _projection_service
    if _projection_service is None:
        _projection_service = ProjectionService()
    return _projection_service
