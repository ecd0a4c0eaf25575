"""
Replacement / assignment history ledger.

Once acceptance has started, recording a replacement is the only way to
change who is on a beat. One call writes the immutable ReplacementRecord,
retires the old acceptance row (kept for history), and opens a pending
row for the newcomer, all in one transaction.
"""

import uuid
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session as DbSession

from beatwatch.db.postgres import get_db_session
from beatwatch.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from beatwatch.models import Beat, BeatStatus, ReplacementRecord
from beatwatch.services.acceptance import AcceptanceTracker
from beatwatch.services.event_log import EventLogService
from beatwatch.services.locking import beat_unit_of_work


class ReplacementLedger:
    """Append-only history of personnel substitutions per beat."""

    def __init__(
        self,
        db_session: Optional[DbSession] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._db = db_session
        self.clock = clock or datetime.utcnow
        self.logger = logging.getLogger("service.ReplacementLedger")

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

    def record_replacement(
        self,
        beat_id: uuid.UUID,
        old_personnel_id: Optional[uuid.UUID],
        new_personnel_id: Optional[uuid.UUID],
        reason: str,
        actor_id: Optional[uuid.UUID] = None,
    ) -> ReplacementRecord:
        """
        Record a substitution and apply it to the beat's membership.

        old=None fills a new slot; new=None is a pure removal. On an
        in-progress beat only removals are allowed, since a newcomer's pending
        row would break unanimous acceptance of an active duty.
        """
        errors = []
        if not isinstance(reason, str) or not reason.strip():
            errors.append("A reason is required")
        if old_personnel_id is None and new_personnel_id is None:
            errors.append("At least one of old_personnel_id or new_personnel_id is required")
        elif old_personnel_id == new_personnel_id:
            errors.append("old_personnel_id and new_personnel_id must differ")
        if errors:
            raise ValidationError("Invalid replacement", details=errors)

        with beat_unit_of_work(self.db, beat_id) as beat:
            if beat.status == BeatStatus.COMPLETED:
                raise InvalidStateError("Beat is completed; its roster is final")
            if beat.status == BeatStatus.IN_PROGRESS and new_personnel_id is not None:
                raise InvalidStateError("Duty in progress; only removals can be recorded")

            old_assignment = None
            if old_personnel_id is not None:
                old_assignment = beat.assignment_for(old_personnel_id)
                if old_assignment is None:
                    raise NotFoundError(
                        f"Personnel {old_personnel_id} is not assigned to beat {beat_id}"
                    )
            if new_personnel_id is not None and beat.assignment_for(new_personnel_id) is not None:
                raise ConflictError(f"Personnel {new_personnel_id} is already assigned to beat {beat_id}")

            now = self.clock()
            tracker = self.tracker

            if old_assignment is not None:
                before = old_assignment.to_dict()
                tracker.retire_assignment(old_assignment, now)
                self.events.append_event(
                    entity_type=EventLogService.ASSIGNMENT,
                    entity_id=old_assignment.assignment_id,
                    operation=EventLogService.ASSIGNMENT_REMOVED,
                    before=before,
                    after=old_assignment.to_dict(),
                    actor_id=actor_id,
                    occurred_at=now,
                )

            if new_personnel_id is not None:
                slot = old_assignment.slot if old_assignment is not None else None
                new_assignment = tracker.open_assignment(beat, new_personnel_id, now, slot=slot)
                self.events.append_event(
                    entity_type=EventLogService.ASSIGNMENT,
                    entity_id=new_assignment.assignment_id,
                    operation=EventLogService.ASSIGNMENT_ADDED,
                    after=new_assignment.to_dict(),
                    actor_id=actor_id,
                    occurred_at=now,
                )

            record = ReplacementRecord(
                record_id=uuid.uuid4(),
                beat_id=beat.beat_id,
                old_personnel_id=old_personnel_id,
                new_personnel_id=new_personnel_id,
                reason=reason.strip(),
                replaced_at=now,
                recorded_by=actor_id,
                created_at=now,
            )
            self.db.add(record)
            self.events.append_event(
                entity_type=EventLogService.REPLACEMENT,
                entity_id=record.record_id,
                operation=EventLogService.REPLACEMENT_RECORDED,
                after=record.to_dict(),
                actor_id=actor_id,
                occurred_at=now,
            )
            self.logger.info(
                f"Beat {beat_id}: replaced {old_personnel_id} with {new_personnel_id} ({record.reason})"
            )

            # Removing the last pending personnel can complete acceptance
            tracker.scheduler.activate_locked(beat, actor_id=actor_id)

        return record

    def history_for_beat(self, beat_id: uuid.UUID) -> List[ReplacementRecord]:
        """Replacement records for a beat, newest first. Read-only."""
        exists = self.db.query(Beat.beat_id).filter(Beat.beat_id == beat_id).first()
        if exists is None:
            raise NotFoundError(f"Beat {beat_id} not found")
        return (
            self.db.query(ReplacementRecord)
            .filter(ReplacementRecord.beat_id == beat_id)
            .order_by(ReplacementRecord.replaced_at.desc(), ReplacementRecord.created_at.desc())
            .all()
        )
