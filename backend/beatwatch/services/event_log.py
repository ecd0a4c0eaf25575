"""
EventLogService: append-only audit event logging.

Every state transition in the engine (acceptance responses, duty start/end,
violation lifecycle, replacements, beat edits) is written here as a discrete
event with before/after snapshots. Events are added to the caller's session
and commit together with the change they describe.
"""

import uuid
import logging
from datetime import datetime
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session as DbSession

from beatwatch.db.postgres import get_db_session
from beatwatch.models import EventLog


class EventLogService:
    """
    Append-only audit event logging.

    Entity types: beat, assignment, violation, replacement.
    """

    # Entity types
    BEAT = "beat"
    ASSIGNMENT = "assignment"
    VIOLATION = "violation"
    REPLACEMENT = "replacement"

    # Operations
    BEAT_CREATED = "beat.created"
    BEAT_UPDATED = "beat.updated"
    BEAT_DELETED = "beat.deleted"
    BEAT_DECLINED = "beat.declined"
    BEAT_REOPENED = "beat.reopened"
    ASSIGNMENT_ADDED = "assignment.added"
    ASSIGNMENT_REMOVED = "assignment.removed"
    ACCEPTANCE_RESPONDED = "acceptance.responded"
    DUTY_AUTO_STARTED = "duty.auto_started"
    DUTY_ENDED = "duty.ended"
    VIOLATION_CREATED = "violation.created"
    VIOLATION_ACKNOWLEDGED = "violation.acknowledged"
    VIOLATION_RESOLVED = "violation.resolved"
    REPLACEMENT_RECORDED = "replacement.recorded"

    def __init__(self, db_session: Optional[DbSession] = None):
        self._explicit_db = db_session
        self.logger = logging.getLogger("service.EventLogService")

    @property
    def db(self) -> DbSession:
        if self._explicit_db is not None:
            return self._explicit_db
        return get_db_session()

    def append_event(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
        operation: str,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        actor_id: Optional[uuid.UUID] = None,
        correlation_id: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
    ) -> EventLog:
        """
        Append an event to the audit log.

        INSERT-only; the caller's transaction decides whether it persists,
        so a rejected mutation leaves no audit trace either.
        """
        event = EventLog(
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            before_json=before,
            after_json=after,
            actor_id=actor_id,
            correlation_id=correlation_id,
            created_at=occurred_at or datetime.utcnow(),
        )
        self.db.add(event)
        self.logger.debug(f"{operation} {entity_type}={entity_id} actor={actor_id}")
        return event

    def events_for_entity(self, entity_type: str, entity_id: uuid.UUID) -> List[EventLog]:
        """Events for one entity, oldest first."""
        return (
            self.db.query(EventLog)
            .filter(
                EventLog.entity_type == entity_type,
                EventLog.entity_id == entity_id,
            )
            .order_by(EventLog.created_at.asc())
            .all()
        )
