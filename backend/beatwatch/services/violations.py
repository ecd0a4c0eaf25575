"""
Violation Detector.

Evaluates each position fix independently against the beat's current
geometry. A fix from accepted personnel on an in-progress beat that lies
strictly farther than the radius from the center raises an exit violation
and bumps Beat.violation_count under the beat lock. Re-entry is not logged.
"""

import uuid
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session as DbSession

from beatwatch.db.postgres import get_db_session
from beatwatch.errors import InvalidStateError, NotFoundError, ValidationError
from beatwatch.models import (
    Beat,
    BeatStatus,
    AcceptanceStatus,
    Violation,
    ViolationKind,
    ViolationStatus,
)
from beatwatch.services.event_log import EventLogService
from beatwatch.services.geometry import coordinate_errors, haversine_m, within_radius
from beatwatch.services.locking import atomic, beat_unit_of_work


class ViolationDetector:
    """Turns raw position fixes into exit violations and manages their status."""

    def __init__(
        self,
        db_session: Optional[DbSession] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._db = db_session
        self.clock = clock or datetime.utcnow
        self.logger = logging.getLogger("service.ViolationDetector")

    @property
    def db(self) -> DbSession:
        if self._db is None:
            self._db = get_db_session()
        return self._db

    @property
    def events(self) -> EventLogService:
        return EventLogService(self.db)

    # -------------------------------------------------------------------------
    # Detection
    # -------------------------------------------------------------------------

    def ingest_fix(
        self,
        beat_id: uuid.UUID,
        personnel_id: uuid.UUID,
        lat: float,
        lng: float,
        timestamp: datetime,
    ) -> Optional[Violation]:
        """
        Evaluate one fix. Returns the new Violation, or None when the fix is
        inside the zone or the beat/personnel is not on active duty.
        """
        errors = coordinate_errors(lat, lng)
        if not isinstance(timestamp, datetime):
            errors.append("timestamp must be a datetime")
        if errors:
            raise ValidationError("Invalid position fix", details=errors)

        with beat_unit_of_work(self.db, beat_id) as beat:
            if beat.status != BeatStatus.IN_PROGRESS:
                self.logger.debug(f"Fix ignored: beat {beat_id} is {beat.status}")
                return None

            assignment = beat.assignment_for(personnel_id)
            if assignment is None or assignment.acceptance_status != AcceptanceStatus.ACCEPTED:
                self.logger.debug(f"Fix ignored: personnel {personnel_id} not on duty at beat {beat_id}")
                return None

            if within_radius(beat.center_lat, beat.center_lng, beat.radius_m, lat, lng):
                return None

            distance = haversine_m(beat.center_lat, beat.center_lng, lat, lng)

            violation = self._raise_violation(beat, personnel_id, lat, lng, timestamp, distance)

        return violation

    def _raise_violation(
        self,
        beat: Beat,
        personnel_id: uuid.UUID,
        lat: float,
        lng: float,
        timestamp: datetime,
        distance: float,
    ) -> Violation:
        now = self.clock()
        violation = Violation(
            violation_id=uuid.uuid4(),
            beat_id=beat.beat_id,
            personnel_id=personnel_id,
            kind=ViolationKind.EXIT,
            fix_timestamp=timestamp,
            location_lat=lat,
            location_lng=lng,
            distance_from_center_m=distance,
            status=ViolationStatus.PENDING,
            created_at=now,
        )
        self.db.add(violation)
        beat.violation_count = (beat.violation_count or 0) + 1

        self.events.append_event(
            entity_type=EventLogService.VIOLATION,
            entity_id=violation.violation_id,
            operation=EventLogService.VIOLATION_CREATED,
            after=violation.to_dict(),
            occurred_at=now,
        )
        self.logger.warning(
            f"Exit violation on beat {beat.beat_id}: personnel {personnel_id} "
            f"{distance:.1f}m from center (radius {beat.radius_m:g}m)"
        )
        return violation

    # -------------------------------------------------------------------------
    # Status lifecycle
    # -------------------------------------------------------------------------

    def acknowledge(self, violation_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Violation:
        """pending -> acknowledged. Acknowledging twice is a no-op."""
        with atomic(self.db):
            violation = self._get_for_update(violation_id)
            if violation.status == ViolationStatus.RESOLVED:
                raise InvalidStateError("Violation is already resolved")
            if violation.status == ViolationStatus.ACKNOWLEDGED:
                return violation

            now = self.clock()
            before = violation.to_dict()
            violation.status = ViolationStatus.ACKNOWLEDGED
            violation.acknowledged_at = now
            violation.acknowledged_by = actor_id
            self._audit(violation, EventLogService.VIOLATION_ACKNOWLEDGED, before, actor_id, now)
        return violation

    def resolve(self, violation_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Violation:
        """pending/acknowledged -> resolved. Resolving twice is a no-op."""
        with atomic(self.db):
            violation = self._get_for_update(violation_id)
            if violation.status == ViolationStatus.RESOLVED:
                return violation

            now = self.clock()
            before = violation.to_dict()
            violation.status = ViolationStatus.RESOLVED
            violation.resolved_at = now
            violation.resolved_by = actor_id
            self._audit(violation, EventLogService.VIOLATION_RESOLVED, before, actor_id, now)
        return violation

    def _audit(self, violation, operation, before, actor_id, now):
        self.events.append_event(
            entity_type=EventLogService.VIOLATION,
            entity_id=violation.violation_id,
            operation=operation,
            before=before,
            after=violation.to_dict(),
            actor_id=actor_id,
            occurred_at=now,
        )
        self.logger.info(f"Violation {violation.violation_id} {violation.status}")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_violation(self, violation_id: uuid.UUID) -> Violation:
        violation = self.db.query(Violation).filter(Violation.violation_id == violation_id).first()
        if violation is None:
            raise NotFoundError(f"Violation {violation_id} not found")
        return violation

    def list_violations(
        self,
        beat_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        personnel_id: Optional[uuid.UUID] = None,
    ) -> List[Violation]:
        """Violations newest first, optionally filtered."""
        query = self.db.query(Violation)
        if beat_id is not None:
            query = query.filter(Violation.beat_id == beat_id)
        if status is not None:
            query = query.filter(Violation.status == status)
        if personnel_id is not None:
            query = query.filter(Violation.personnel_id == personnel_id)
        return query.order_by(Violation.created_at.desc()).all()

    def _get_for_update(self, violation_id: uuid.UUID) -> Violation:
        violation = (
            self.db.query(Violation)
            .filter(Violation.violation_id == violation_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if violation is None:
            raise NotFoundError(f"Violation {violation_id} not found")
        return violation
