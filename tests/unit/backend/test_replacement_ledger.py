"""
Unit tests for ReplacementLedger.
"""

import uuid

import pytest

from beatwatch.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from beatwatch.models import BeatAssignment, AcceptanceStatus, EventLog
from beatwatch.services.acceptance import AcceptanceTracker
from beatwatch.services.beat_registry import BeatRegistry
from beatwatch.services.duty_scheduler import DutyScheduler
from beatwatch.services.event_log import EventLogService
from beatwatch.services.replacements import ReplacementLedger


@pytest.fixture
def ledger(db_session, clock):
    return ReplacementLedger(db_session, clock=clock)


@pytest.fixture
def tracker(db_session, clock):
    return AcceptanceTracker(db_session, clock=clock)


@pytest.fixture
def registry(db_session, clock):
    return BeatRegistry(db_session, clock=clock)


def _snapshot(db_session, beat_id):
    rows = (
        db_session.query(BeatAssignment)
        .filter_by(beat_id=beat_id)
        .order_by(BeatAssignment.assigned_at, BeatAssignment.personnel_id)
        .all()
    )
    return [r.to_dict() for r in rows]


class TestRecordReplacement:
    """Tests for substitutions and their effect on membership."""

    def test_replacement_retires_old_and_opens_new(self, make_beat, ledger, tracker, registry, db_session, personnel, dispatcher_id):
        beat = make_beat(personnel[:2])
        tracker.respond(beat.beat_id, personnel[0], "decline", reason="Sick")

        record = ledger.record_replacement(
            beat.beat_id, personnel[0], personnel[2], "Sick leave", actor_id=dispatcher_id
        )

        assert record.old_personnel_id == personnel[0]
        assert record.new_personnel_id == personnel[2]
        assert record.reason == "Sick leave"
        assert record.recorded_by == dispatcher_id

        fresh = registry.get_beat(beat.beat_id)
        assert fresh.assigned_personnel == [personnel[2], personnel[1]]
        assert fresh.assignment_for(personnel[2]).acceptance_status == AcceptanceStatus.PENDING

        old_row = db_session.query(BeatAssignment).filter_by(personnel_id=personnel[0]).one()
        assert old_row.removed_at is not None
        assert old_row.acceptance_status == AcceptanceStatus.DECLINED
        assert old_row.decline_reason == "Sick"

    def test_fill_new_slot(self, make_beat, ledger, registry, personnel):
        beat = make_beat(personnel[:1])

        ledger.record_replacement(beat.beat_id, None, personnel[1], "Additional coverage")

        assert registry.get_beat(beat.beat_id).assigned_personnel == personnel[:2]

    def test_audit_events(self, make_beat, ledger, db_session, personnel):
        beat = make_beat(personnel[:1])

        record = ledger.record_replacement(beat.beat_id, personnel[0], personnel[1], "Shift swap")

        events = EventLogService(db_session).events_for_entity(EventLogService.REPLACEMENT, record.record_id)
        assert [e.operation for e in events] == [EventLogService.REPLACEMENT_RECORDED]
        assert events[0].after_json["reason"] == "Shift swap"

        assignment_ops = sorted(
            e.operation
            for e in db_session.query(EventLog).filter_by(entity_type=EventLogService.ASSIGNMENT).all()
        )
        # Creation of the original row, then the swap
        assert assignment_ops == sorted([
            EventLogService.ASSIGNMENT_ADDED,
            EventLogService.ASSIGNMENT_REMOVED,
            EventLogService.ASSIGNMENT_ADDED,
        ])

    @pytest.mark.parametrize("old_idx,new_idx,reason", [
        (0, 2, ""),
        (0, 2, "   "),
        (0, 2, None),
        (None, None, "No one"),
        (0, 0, "Same person"),
    ])
    def test_validation_errors(self, make_beat, ledger, personnel, old_idx, new_idx, reason):
        beat = make_beat(personnel[:2])
        old_id = personnel[old_idx] if old_idx is not None else None
        new_id = personnel[new_idx] if new_idx is not None else None

        with pytest.raises(ValidationError):
            ledger.record_replacement(beat.beat_id, old_id, new_id, reason)

    def test_old_not_assigned(self, make_beat, ledger, personnel):
        beat = make_beat(personnel[:1])
        with pytest.raises(NotFoundError):
            ledger.record_replacement(beat.beat_id, personnel[3], personnel[2], "Mistake")

    def test_new_already_assigned(self, make_beat, ledger, db_session, personnel):
        beat = make_beat(personnel[:2])
        before = _snapshot(db_session, beat.beat_id)

        with pytest.raises(ConflictError):
            ledger.record_replacement(beat.beat_id, personnel[0], personnel[1], "Swap")

        assert _snapshot(db_session, beat.beat_id) == before
        assert ledger.history_for_beat(beat.beat_id) == []

    def test_in_progress_allows_only_removal(self, make_beat, ledger, tracker, registry, personnel):
        beat = make_beat(personnel[:2])
        tracker.respond(beat.beat_id, personnel[0], "accept")
        tracker.respond(beat.beat_id, personnel[1], "accept")

        with pytest.raises(InvalidStateError):
            ledger.record_replacement(beat.beat_id, personnel[0], personnel[2], "Injured")

        ledger.record_replacement(beat.beat_id, personnel[0], None, "Injured on duty")
        assert registry.get_beat(beat.beat_id).assigned_personnel == [personnel[1]]

    def test_completed_beat_rejects(self, make_beat, ledger, tracker, db_session, clock, personnel):
        beat = make_beat(personnel[:1])
        tracker.respond(beat.beat_id, personnel[0], "accept")
        DutyScheduler(db_session, clock=clock).end_duty(beat.beat_id)

        with pytest.raises(InvalidStateError):
            ledger.record_replacement(beat.beat_id, personnel[0], None, "Late correction")


class TestHistoryForBeat:
    """Tests for the read side of the ledger."""

    def test_newest_first(self, make_beat, ledger, personnel):
        beat = make_beat(personnel[:1])
        first = ledger.record_replacement(beat.beat_id, personnel[0], personnel[1], "Shift swap")
        second = ledger.record_replacement(beat.beat_id, personnel[1], personnel[2], "Sick")

        history = ledger.history_for_beat(beat.beat_id)

        assert [r.record_id for r in history] == [second.record_id, first.record_id]

    def test_empty_reason_leaves_history_and_rows_unchanged(self, make_beat, ledger, tracker, registry, db_session, personnel):
        beat = make_beat(personnel[:2])
        tracker.respond(beat.beat_id, personnel[0], "decline", reason="Sick")
        ledger.record_replacement(beat.beat_id, personnel[0], personnel[2], "Sick leave")

        history_before = [r.to_dict() for r in ledger.history_for_beat(beat.beat_id)]
        rows_before = _snapshot(db_session, beat.beat_id)
        assigned_before = registry.get_beat(beat.beat_id).assigned_personnel

        with pytest.raises(ValidationError):
            ledger.record_replacement(beat.beat_id, personnel[1], personnel[3], "")

        assert [r.to_dict() for r in ledger.history_for_beat(beat.beat_id)] == history_before
        assert _snapshot(db_session, beat.beat_id) == rows_before
        assert registry.get_beat(beat.beat_id).assigned_personnel == assigned_before

    def test_available_after_delete(self, make_beat, ledger, registry, personnel):
        beat = make_beat(personnel[:1])
        ledger.record_replacement(beat.beat_id, personnel[0], personnel[1], "Shift swap")
        registry.delete_beat(beat.beat_id)

        assert len(ledger.history_for_beat(beat.beat_id)) == 1

    def test_unknown_beat(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.history_for_beat(uuid.uuid4())
