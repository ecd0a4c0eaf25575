"""
Unit tests for EventLogService.
"""

import uuid
from datetime import datetime
from unittest.mock import MagicMock

from beatwatch.models import EventLog
from beatwatch.services.event_log import EventLogService


class TestAppendEvent:
    """Tests for append-only audit writes."""

    def test_adds_without_committing(self):
        db = MagicMock()
        service = EventLogService(db)

        event = service.append_event(
            entity_type=EventLogService.BEAT,
            entity_id=uuid.uuid4(),
            operation=EventLogService.BEAT_CREATED,
            after={"status": "pending"},
        )

        db.add.assert_called_once_with(event)
        db.commit.assert_not_called()
        assert event.after_json == {"status": "pending"}
        assert event.before_json is None

    def test_uses_given_timestamp(self):
        service = EventLogService(MagicMock())
        at = datetime(2026, 10, 19, 3, 0)

        event = service.append_event(
            entity_type=EventLogService.VIOLATION,
            entity_id=uuid.uuid4(),
            operation=EventLogService.VIOLATION_CREATED,
            occurred_at=at,
        )

        assert event.created_at == at

    def test_rolled_back_with_caller(self, db_session):
        service = EventLogService(db_session)
        entity_id = uuid.uuid4()

        service.append_event(EventLogService.BEAT, entity_id, EventLogService.BEAT_UPDATED)
        db_session.rollback()

        assert service.events_for_entity(EventLogService.BEAT, entity_id) == []

    def test_events_for_entity_oldest_first(self, db_session):
        service = EventLogService(db_session)
        entity_id = uuid.uuid4()
        service.append_event(EventLogService.BEAT, entity_id, EventLogService.DUTY_ENDED,
                             occurred_at=datetime(2026, 10, 19, 10, 0), correlation_id="manual")
        service.append_event(EventLogService.BEAT, entity_id, EventLogService.BEAT_CREATED,
                             occurred_at=datetime(2026, 10, 19, 0, 0))
        service.append_event(EventLogService.BEAT, uuid.uuid4(), EventLogService.BEAT_CREATED)
        db_session.commit()

        events = service.events_for_entity(EventLogService.BEAT, entity_id)

        assert [e.operation for e in events] == [EventLogService.BEAT_CREATED, EventLogService.DUTY_ENDED]
        assert events[1].to_dict()["correlation_id"] == "manual"
        assert db_session.query(EventLog).count() == 3
