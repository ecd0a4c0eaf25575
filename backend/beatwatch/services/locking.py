"""
Per-beat serialization.

All writes that touch Beat.status, assignment rows, or violation_count run
inside beat_unit_of_work(): an in-process lock chosen by beat id, then a row
lock on the beat (SELECT ... FOR UPDATE) for cross-process safety. Both waits
are bounded by BEAT_LOCK_TIMEOUT_SECONDS.

The in-process locks are a fixed pool of stripes, so memory does not grow
with the number of beat ids seen. Two beats on the same stripe serialize with
each other; a unit of work never holds more than one stripe.
"""

import threading
import uuid
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session as DbSession

from beatwatch.config import config
from beatwatch.errors import BeatLockTimeout, NotFoundError
from beatwatch.models import Beat

LOCK_STRIPES = 256

_beat_locks: List[threading.Lock] = [threading.Lock() for _ in range(LOCK_STRIPES)]


def _lock_for(beat_id: uuid.UUID) -> threading.Lock:
    return _beat_locks[hash(beat_id) % LOCK_STRIPES]


@contextmanager
def beat_lock(beat_id: uuid.UUID, timeout: Optional[float] = None):
    """Hold the in-process lock for one beat. Raises BeatLockTimeout."""
    wait = config.BEAT_LOCK_TIMEOUT_SECONDS if timeout is None else timeout
    lock = _lock_for(beat_id)
    if not lock.acquire(timeout=wait):
        raise BeatLockTimeout(beat_id)
    try:
        yield
    finally:
        lock.release()


def load_beat_for_update(db: DbSession, beat_id: uuid.UUID) -> Beat:
    """Fetch a live beat with a row lock. Raises NotFoundError."""
    if db.get_bind().dialect.name == "postgresql":
        timeout_ms = int(config.BEAT_LOCK_TIMEOUT_SECONDS * 1000)
        db.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))

    beat = (
        db.query(Beat)
        .filter(Beat.beat_id == beat_id, Beat.deleted_at.is_(None))
        .with_for_update()
        .populate_existing()
        .first()
    )
    if beat is None:
        raise NotFoundError(f"Beat {beat_id} not found")
    return beat


@contextmanager
def beat_unit_of_work(db: DbSession, beat_id: uuid.UUID):
    """
    Serialize one operation on one beat and make it atomic.

    Yields the locked Beat. Commits on success; on any exception rolls back
    every change in the session and re-raises unmodified.
    """
    with beat_lock(beat_id):
        try:
            beat = load_beat_for_update(db, beat_id)
            yield beat
            db.commit()
        except Exception:
            db.rollback()
            raise


@contextmanager
def atomic(db: DbSession):
    """Commit on success, roll back and re-raise on any exception."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
