"""
Unit tests for per-beat serialization and atomic units of work.
"""

import threading
import uuid
from datetime import datetime

import pytest

from beatwatch.errors import BeatLockTimeout, NotFoundError
from beatwatch.models import Beat
from beatwatch.services import locking
from beatwatch.services.locking import LOCK_STRIPES, _lock_for, atomic, beat_lock, beat_unit_of_work
from beatwatch.services.violations import ViolationDetector


class TestBeatLock:
    """Tests for the in-process per-beat lock."""

    def test_times_out_when_held(self):
        beat_id = uuid.uuid4()
        held = threading.Event()
        release = threading.Event()

        def _holder():
            with beat_lock(beat_id):
                held.set()
                release.wait(5)

        thread = threading.Thread(target=_holder, daemon=True)
        thread.start()
        held.wait(5)
        try:
            with pytest.raises(BeatLockTimeout) as exc:
                with beat_lock(beat_id, timeout=0.05):
                    pass
            assert exc.value.beat_id == beat_id
            assert isinstance(exc.value, TimeoutError)
        finally:
            release.set()
            thread.join(5)

    def test_beats_on_different_stripes_do_not_contend(self):
        first, second = uuid.UUID(int=1), uuid.UUID(int=2)
        assert _lock_for(first) is not _lock_for(second)

        with beat_lock(first, timeout=0.05):
            with beat_lock(second, timeout=0.05):
                pass

    def test_released_after_exception(self):
        beat_id = uuid.uuid4()
        with pytest.raises(RuntimeError):
            with beat_lock(beat_id):
                raise RuntimeError("boom")
        with beat_lock(beat_id, timeout=0.05):
            pass


class TestBeatUnitOfWork:
    """Tests for commit/rollback around a locked beat."""

    def test_commits_on_success(self, make_beat, db_session):
        beat = make_beat()

        with beat_unit_of_work(db_session, beat.beat_id) as locked:
            locked.radius_m = 800

        db_session.expire_all()
        assert db_session.get(Beat, beat.beat_id).radius_m == 800

    def test_rolls_back_on_error(self, make_beat, db_session):
        beat = make_beat()

        with pytest.raises(ValueError):
            with beat_unit_of_work(db_session, beat.beat_id) as locked:
                locked.radius_m = 800
                raise ValueError("rejected")

        assert db_session.get(Beat, beat.beat_id).radius_m == 500

    def test_missing_beat(self, db_session):
        with pytest.raises(NotFoundError):
            with beat_unit_of_work(db_session, uuid.uuid4()):
                pass


class TestAtomic:
    """Tests for the lock-free commit helper."""

    def test_rollback_discards_pending_objects(self, make_beat, db_session):
        beat = make_beat()

        with pytest.raises(RuntimeError):
            with atomic(db_session):
                db_session.get(Beat, beat.beat_id).name = "Changed"
                raise RuntimeError("boom")

        assert db_session.get(Beat, beat.beat_id).name == "Poblacion Beat 1"


class TestLockStripes:
    """Tests for the fixed pool of per-beat locks."""

    def test_same_beat_maps_to_same_lock(self):
        beat_id = uuid.uuid4()
        assert _lock_for(beat_id) is _lock_for(uuid.UUID(str(beat_id)))

    def test_pool_does_not_grow_with_beat_ids(self):
        before = list(locking._beat_locks)

        seen = {id(_lock_for(uuid.uuid4())) for _ in range(2000)}

        assert len(locking._beat_locks) == LOCK_STRIPES
        assert all(a is b for a, b in zip(before, locking._beat_locks))
        assert len(seen) <= LOCK_STRIPES

    def test_unknown_beat_fixes_leave_pool_unchanged(self, db_session, personnel):
        detector = ViolationDetector(db_session)
        before = list(locking._beat_locks)

        for _ in range(500):
            with pytest.raises(NotFoundError):
                detector.ingest_fix(uuid.uuid4(), personnel[0], 13.4119, 121.1805, datetime(2026, 10, 19, 1, 0))

        assert len(locking._beat_locks) == LOCK_STRIPES
        assert all(a is b for a, b in zip(before, locking._beat_locks))
        # Every stripe was released
        assert not any(lock.locked() for lock in locking._beat_locks)

    def test_shared_stripe_serializes_distinct_beats(self):
        first = uuid.UUID(int=3)
        second = uuid.UUID(int=3 + LOCK_STRIPES)
        assert _lock_for(first) is _lock_for(second)

        with beat_lock(first):
            with pytest.raises(BeatLockTimeout):
                with beat_lock(second, timeout=0.05):
                    pass
