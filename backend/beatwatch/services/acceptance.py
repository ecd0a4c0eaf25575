"""
Personnel Acceptance Tracker.

Owns the per-personnel acceptance rows of a beat (BeatAssignment) and the
`all_accepted` aggregate the DutyScheduler uses to auto-start duty. A decline
never removes the person; substitution is a separate ledger call so the
decline stays on record.
"""

import uuid
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session as DbSession

from beatwatch.db.postgres import get_db_session
from beatwatch.errors import InvalidStateError, NotFoundError, ValidationError
from beatwatch.models import Beat, BeatAssignment, BeatStatus, AcceptanceStatus, Decision
from beatwatch.services.event_log import EventLogService
from beatwatch.services.locking import beat_unit_of_work


def beat_all_accepted(beat: Beat) -> bool:
    """True iff the beat has personnel and every current row is accepted."""
    current = beat.current_assignments
    return bool(current) and all(
        a.acceptance_status == AcceptanceStatus.ACCEPTED for a in current
    )


def acceptance_started(beat: Beat) -> bool:
    """True once any personnel has responded on this beat."""
    return any(a.responded_at is not None for a in beat.assignments)


class AcceptanceTracker:
    """
    Records accept/decline responses and exposes the acceptance aggregate.

    Usage:
        tracker = AcceptanceTracker(db)
        tracker.respond(beat_id, personnel_id, "accept")
        tracker.all_accepted(beat_id)
    """

    def __init__(
        self,
        db_session: Optional[DbSession] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._db = db_session
        self.clock = clock or datetime.utcnow
        self.logger = logging.getLogger("service.AcceptanceTracker")
        self._scheduler = None

    @property
    def db(self) -> DbSession:
        if self._db is None:
            self._db = get_db_session()
        return self._db

    @property
    def events(self) -> EventLogService:
        return EventLogService(self.db)

    @property
    def scheduler(self):
        if self._scheduler is None:
            from beatwatch.services.duty_scheduler import DutyScheduler
            self._scheduler = DutyScheduler(self.db, clock=self.clock)
        return self._scheduler

    # -------------------------------------------------------------------------
    # Responses
    # -------------------------------------------------------------------------

    def respond(
        self,
        beat_id: uuid.UUID,
        personnel_id: uuid.UUID,
        decision: str,
        reason: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> BeatAssignment:
        """
        Record an accept or decline from an assigned personnel.

        If this response completes unanimous acceptance the beat moves to
        in_progress within the same transaction.
        """
        if decision not in Decision.ALL:
            raise ValidationError(f"decision must be one of {', '.join(Decision.ALL)}")
        if decision == Decision.DECLINE:
            if not isinstance(reason, str) or not reason.strip():
                raise ValidationError("A reason is required when declining")
            reason = reason.strip()

        with beat_unit_of_work(self.db, beat_id) as beat:
            if beat.status in (BeatStatus.COMPLETED, BeatStatus.DECLINED):
                raise InvalidStateError(f"Beat is {beat.status}; responses are closed")
            if beat.status == BeatStatus.IN_PROGRESS:
                raise InvalidStateError("Duty already started; responses are closed")

            assignment = beat.assignment_for(personnel_id)
            if assignment is None:
                raise NotFoundError(f"Personnel {personnel_id} is not assigned to beat {beat_id}")

            now = self.clock()
            before = assignment.to_dict()

            if decision == Decision.ACCEPT:
                assignment.acceptance_status = AcceptanceStatus.ACCEPTED
                assignment.decline_reason = None
            else:
                assignment.acceptance_status = AcceptanceStatus.DECLINED
                assignment.decline_reason = reason
            if assignment.responded_at is None:
                assignment.responded_at = now

            self.events.append_event(
                entity_type=EventLogService.ASSIGNMENT,
                entity_id=assignment.assignment_id,
                operation=EventLogService.ACCEPTANCE_RESPONDED,
                before=before,
                after=assignment.to_dict(),
                actor_id=actor_id or personnel_id,
                occurred_at=now,
            )
            self.logger.info(f"Beat {beat_id}: personnel {personnel_id} {assignment.acceptance_status}")

            self.scheduler.activate_locked(beat, actor_id=actor_id or personnel_id)

        return assignment

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def all_accepted(self, beat_id: uuid.UUID) -> bool:
        """Side-effect-free aggregate consulted by the DutyScheduler."""
        return beat_all_accepted(self._get_beat(beat_id))

    def acceptance_rows(self, beat_id: uuid.UUID, include_removed: bool = False) -> List[BeatAssignment]:
        """Acceptance rows of a beat in slot order."""
        beat = self._get_beat(beat_id)
        rows = beat.assignments if include_removed else beat.current_assignments
        return list(rows)

    def _get_beat(self, beat_id: uuid.UUID) -> Beat:
        beat = (
            self.db.query(Beat)
            .filter(Beat.beat_id == beat_id, Beat.deleted_at.is_(None))
            .first()
        )
        if beat is None:
            raise NotFoundError(f"Beat {beat_id} not found")
        return beat

    # -------------------------------------------------------------------------
    # Row lifecycle (caller holds the beat unit of work)
    # -------------------------------------------------------------------------

    def open_assignment(
        self,
        beat: Beat,
        personnel_id: uuid.UUID,
        at: datetime,
        slot: Optional[int] = None,
    ) -> BeatAssignment:
        """Create the pending acceptance row for a newly assigned personnel."""
        if slot is None:
            slot = max((a.slot for a in beat.assignments), default=-1) + 1
        assignment = BeatAssignment(
            assignment_id=uuid.uuid4(),
            beat_id=beat.beat_id,
            personnel_id=personnel_id,
            slot=slot,
            acceptance_status=AcceptanceStatus.PENDING,
            assigned_at=at,
        )
        beat.assignments.append(assignment)
        # Keep slot order stable for callers reading current_assignments
        beat.assignments.sort(key=lambda a: (a.slot, a.assigned_at))
        return assignment

    def retire_assignment(self, assignment: BeatAssignment, at: datetime) -> BeatAssignment:
        """Take a row out of the current membership, keeping it for history."""
        assignment.removed_at = at
        return assignment
