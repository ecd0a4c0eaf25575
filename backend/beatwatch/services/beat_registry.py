"""
Beat Registry: create, read, edit and retire beats.

Sole writer of Beat rows outside lifecycle transitions. Geometry and
schedule are frozen once duty starts, so an active violation boundary can
never move under the detector. Direct membership edits are allowed only
until the first personnel responds; after that, changes go through the
ReplacementLedger.
"""

import uuid
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session as DbSession

from beatwatch.config import config
from beatwatch.db.postgres import get_db_session
from beatwatch.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from beatwatch.models import Beat, BeatStatus, AcceptanceStatus, ReplacementRecord
from beatwatch.services.acceptance import AcceptanceTracker, acceptance_started
from beatwatch.services.event_log import EventLogService
from beatwatch.services.geometry import coordinate_errors, radius_errors
from beatwatch.services.locking import atomic, beat_unit_of_work
from beatwatch.services.schedule import parse_time_of_day

# Fields update_geometry_or_schedule() accepts
EDITABLE_FIELDS = (
    "name", "address",
    "center_lat", "center_lng", "radius_m",
    "duty_start", "duty_end",
    "province", "unit", "sub_unit",
)


class AssignmentType:
    """How a personnel came to hold their slot (display only)."""
    ORIGINAL = "original"
    REPLACEMENT = "replacement"


def _validate_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and normalize beat fields. Collects every problem before raising.

    Only keys present in `fields` are checked, so the same routine serves
    create (all keys) and patch (some keys).
    """
    errors = []
    clean = {}

    if "name" in fields:
        name = fields["name"]
        if not isinstance(name, str) or not name.strip() or len(name.strip()) > 100:
            errors.append("Beat name must be a string between 1 and 100 characters")
        else:
            clean["name"] = name.strip()

    if "center_lat" in fields or "center_lng" in fields:
        lat = fields.get("center_lat", 0.0)
        lng = fields.get("center_lng", 0.0)
        coord_errors = coordinate_errors(lat, lng)
        errors.extend(coord_errors)
        if not coord_errors:
            if "center_lat" in fields:
                clean["center_lat"] = float(lat)
            if "center_lng" in fields:
                clean["center_lng"] = float(lng)

    if "radius_m" in fields:
        r_errors = radius_errors(fields["radius_m"], config.BEAT_RADIUS_MIN_M, config.BEAT_RADIUS_MAX_M)
        errors.extend(r_errors)
        if not r_errors:
            clean["radius_m"] = float(fields["radius_m"])

    for key in ("duty_start", "duty_end"):
        if key in fields:
            try:
                clean[key] = parse_time_of_day(fields[key], key)
            except ValidationError as e:
                errors.append(e.message)

    for key in ("address", "province", "unit", "sub_unit"):
        if key in fields:
            value = fields[key]
            if value is None:
                clean[key] = None
            elif not isinstance(value, str) or (key != "address" and not value.strip()):
                errors.append(f"{key} must be a non-empty string")
            else:
                clean[key] = value.strip()

    if errors:
        raise ValidationError("Validation failed", details=errors)
    return clean


class BeatRegistry:
    """
    CRUD for beats plus their initial personnel roster.

    Usage:
        registry = BeatRegistry(db)
        beat = registry.create_beat(
            name="Beat 1", center_lat=13.4119, center_lng=121.1805, radius_m=500,
            duty_start="06:00", duty_end="18:00", personnel_ids=[p1, p2],
        )
    """

    def __init__(
        self,
        db_session: Optional[DbSession] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._db = db_session
        self.clock = clock or datetime.utcnow
        self.logger = logging.getLogger("service.BeatRegistry")

    @property
    def db(self) -> DbSession:
        if self._db is None:
            self._db = get_db_session()
        return self._db

    @property
    def events(self) -> EventLogService:
        return EventLogService(self.db)

    @property
    def tracker(self) -> AcceptanceTracker:
        return AcceptanceTracker(self.db, clock=self.clock)

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create_beat(
        self,
        name: str,
        center_lat: float,
        center_lng: float,
        radius_m: float,
        duty_start,
        duty_end,
        personnel_ids: Iterable[uuid.UUID] = (),
        province: Optional[str] = None,
        unit: Optional[str] = None,
        sub_unit: Optional[str] = None,
        address: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Beat:
        """Create a pending beat with one pending acceptance row per personnel."""
        fields = _validate_fields({
            "name": name,
            "center_lat": center_lat,
            "center_lng": center_lng,
            "radius_m": radius_m,
            "duty_start": duty_start,
            "duty_end": duty_end,
            "province": province,
            "unit": unit,
            "sub_unit": sub_unit,
            "address": address,
        })
        personnel_ids = list(personnel_ids or [])
        if len(set(personnel_ids)) != len(personnel_ids):
            raise ValidationError("Personnel ids must be unique per beat")
        if not personnel_ids:
            self.logger.warning(f"Beat '{fields['name']}' created without personnel; it will stay pending")

        with atomic(self.db):
            now = self.clock()
            beat = Beat(
                beat_id=uuid.uuid4(),
                status=BeatStatus.PENDING,
                violation_count=0,
                created_by=actor_id,
                created_at=now,
                updated_at=now,
                **fields,
            )
            self.db.add(beat)
            self.events.append_event(
                entity_type=EventLogService.BEAT,
                entity_id=beat.beat_id,
                operation=EventLogService.BEAT_CREATED,
                after=beat.to_dict(),
                actor_id=actor_id,
                occurred_at=now,
            )

            tracker = self.tracker
            for personnel_id in personnel_ids:
                assignment = tracker.open_assignment(beat, personnel_id, now)
                self.events.append_event(
                    entity_type=EventLogService.ASSIGNMENT,
                    entity_id=assignment.assignment_id,
                    operation=EventLogService.ASSIGNMENT_ADDED,
                    after=assignment.to_dict(),
                    actor_id=actor_id,
                    occurred_at=now,
                )
            self.logger.info(f"Beat {beat.beat_id} ({beat.name}) created with {len(personnel_ids)} personnel")
        return beat

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def get_beat(self, beat_id: uuid.UUID) -> Beat:
        beat = (
            self.db.query(Beat)
            .filter(Beat.beat_id == beat_id, Beat.deleted_at.is_(None))
            .first()
        )
        if beat is None:
            raise NotFoundError(f"Beat {beat_id} not found")
        return beat

    def list_beats(
        self,
        province: Optional[str] = None,
        unit: Optional[str] = None,
        sub_unit: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Beat]:
        """Live beats newest first, filtered by scope and status."""
        query = self.db.query(Beat).filter(Beat.deleted_at.is_(None))
        if province:
            query = query.filter(Beat.province == province)
        if unit:
            query = query.filter(Beat.unit == unit)
        if sub_unit:
            query = query.filter(Beat.sub_unit == sub_unit)
        if status:
            query = query.filter(Beat.status == status)
        return query.order_by(Beat.created_at.desc()).all()

    def roster(self, beat_id: uuid.UUID) -> List[Dict[str, Any]]:
        """
        Current assignments labelled original/replacement for display.

        A personnel is a replacement when the ledger names them as the
        newcomer on this beat; the latest such record supplies the reason.
        """
        beat = self.get_beat(beat_id)
        records = (
            self.db.query(ReplacementRecord)
            .filter(
                ReplacementRecord.beat_id == beat_id,
                ReplacementRecord.new_personnel_id.isnot(None),
            )
            .order_by(ReplacementRecord.replaced_at.desc())
            .all()
        )
        latest_by_personnel = {}
        for record in records:
            latest_by_personnel.setdefault(record.new_personnel_id, record)

        roster = []
        for assignment in beat.current_assignments:
            record = latest_by_personnel.get(assignment.personnel_id)
            entry = assignment.to_dict()
            entry["assignment_type"] = AssignmentType.REPLACEMENT if record else AssignmentType.ORIGINAL
            entry["replacement_info"] = (
                {"reason": record.reason, "replaced_at": record.replaced_at.isoformat()}
                if record else None
            )
            roster.append(entry)
        return roster

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def update_geometry_or_schedule(
        self,
        beat_id: uuid.UUID,
        patch: Dict[str, Any],
        actor_id: Optional[uuid.UUID] = None,
    ) -> Beat:
        """Apply a partial update. Rejected once duty is in progress or completed."""
        if not isinstance(patch, dict) or not patch:
            raise ValidationError("Nothing to update")
        unknown = sorted(set(patch) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValidationError("Unknown fields", details=[f"{k} cannot be updated" for k in unknown])
        fields = _validate_fields(patch)

        with beat_unit_of_work(self.db, beat_id) as beat:
            if beat.status not in BeatStatus.EDITABLE:
                raise InvalidStateError(
                    f"Beat is {beat.status}; geometry and schedule are frozen during and after duty"
                )
            now = self.clock()
            before = beat.to_dict()
            for key, value in fields.items():
                setattr(beat, key, value)
            beat.updated_at = now

            self.events.append_event(
                entity_type=EventLogService.BEAT,
                entity_id=beat.beat_id,
                operation=EventLogService.BEAT_UPDATED,
                before=before,
                after=beat.to_dict(),
                actor_id=actor_id,
                occurred_at=now,
            )
            self.logger.info(f"Beat {beat_id} updated: {', '.join(sorted(fields))}")
        return beat

    # -------------------------------------------------------------------------
    # Membership (before acceptance starts)
    # -------------------------------------------------------------------------

    def add_personnel(
        self,
        beat_id: uuid.UUID,
        personnel_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Beat:
        with beat_unit_of_work(self.db, beat_id) as beat:
            self._check_membership_open(beat)
            if beat.assignment_for(personnel_id) is not None:
                raise ConflictError(f"Personnel {personnel_id} is already assigned to beat {beat_id}")

            now = self.clock()
            assignment = self.tracker.open_assignment(beat, personnel_id, now)
            beat.updated_at = now
            self.events.append_event(
                entity_type=EventLogService.ASSIGNMENT,
                entity_id=assignment.assignment_id,
                operation=EventLogService.ASSIGNMENT_ADDED,
                after=assignment.to_dict(),
                actor_id=actor_id,
                occurred_at=now,
            )
        return beat

    def remove_personnel(
        self,
        beat_id: uuid.UUID,
        personnel_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Beat:
        with beat_unit_of_work(self.db, beat_id) as beat:
            self._check_membership_open(beat)
            assignment = beat.assignment_for(personnel_id)
            if assignment is None:
                raise NotFoundError(f"Personnel {personnel_id} is not assigned to beat {beat_id}")

            now = self.clock()
            before = assignment.to_dict()
            # Never answered, so nothing to keep for history
            beat.assignments.remove(assignment)
            beat.updated_at = now
            self.events.append_event(
                entity_type=EventLogService.ASSIGNMENT,
                entity_id=assignment.assignment_id,
                operation=EventLogService.ASSIGNMENT_REMOVED,
                before=before,
                actor_id=actor_id,
                occurred_at=now,
            )
        return beat

    def _check_membership_open(self, beat: Beat) -> None:
        if beat.status != BeatStatus.PENDING or acceptance_started(beat):
            raise InvalidStateError(
                "Acceptance has started; record a replacement to change personnel"
            )

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    def delete_beat(self, beat_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Beat:
        """
        Soft-delete a beat.

        Refused while an in-progress duty has accepted personnel. Pending,
        never answered acceptance rows are removed; answered rows, violations
        and replacement records stay for audit.
        """
        with beat_unit_of_work(self.db, beat_id) as beat:
            if beat.status == BeatStatus.IN_PROGRESS and any(
                a.acceptance_status == AcceptanceStatus.ACCEPTED for a in beat.current_assignments
            ):
                raise ConflictError("Beat has an active duty with accepted personnel; end the duty first")

            now = self.clock()
            before = beat.to_dict()
            for assignment in list(beat.assignments):
                if assignment.responded_at is None and assignment.removed_at is None:
                    beat.assignments.remove(assignment)
            beat.deleted_at = now
            beat.updated_at = now

            self.events.append_event(
                entity_type=EventLogService.BEAT,
                entity_id=beat.beat_id,
                operation=EventLogService.BEAT_DELETED,
                before=before,
                after=beat.to_dict(),
                actor_id=actor_id,
                occurred_at=now,
            )
            self.logger.info(f"Beat {beat_id} ({beat.name}) deleted")
        return beat
