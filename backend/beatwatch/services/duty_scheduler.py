"""
Duty Scheduler: beat lifecycle transitions.

    pending/accepted --(all accepted)--------------> in_progress  (auto, timestamped)
    pending/accepted --(a decline + caller marks)---> declined
    declined --------(decliners replaced + reopen)--> pending
    in_progress -----(end_duty or scheduled end)----> completed

Auto-start is unconditional the moment the last acceptance lands and fires
at most once per activation: activate_locked() re-checks the status under the
beat lock, so repeated or racing calls are no-ops. Manual and scheduled
completion produce the same post-state; completing an already completed beat
is a no-op.
"""

import uuid
import logging
import threading
from contextlib import closing
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session as DbSession

from beatwatch.config import config
from beatwatch.db.postgres import get_db_session, session_scope
from beatwatch.errors import BeatLockTimeout, ConflictError, InvalidStateError, NotFoundError
from beatwatch.models import Beat, BeatStatus, AcceptanceStatus
from beatwatch.services.acceptance import beat_all_accepted
from beatwatch.services.event_log import EventLogService
from beatwatch.services.locking import beat_unit_of_work
from beatwatch.services.schedule import next_end_after


class CompletionTrigger:
    """What ended a duty. Recorded on the audit event only."""
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class DutyScheduler:
    """Drives Beat.status from acceptance aggregates and the duty window."""

    def __init__(
        self,
        db_session: Optional[DbSession] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._db = db_session
        self.clock = clock or datetime.utcnow
        self.logger = logging.getLogger("service.DutyScheduler")

    @property
    def db(self) -> DbSession:
        if self._db is None:
            self._db = get_db_session()
        return self._db

    @property
    def events(self) -> EventLogService:
        return EventLogService(self.db)

    # -------------------------------------------------------------------------
    # Activation
    # -------------------------------------------------------------------------

    def activate_if_ready(self, beat_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Beat:
        """Re-evaluate auto-start for a beat. Safe to call any number of times."""
        with beat_unit_of_work(self.db, beat_id) as beat:
            self.activate_locked(beat, actor_id=actor_id)
        return beat

    def activate_locked(self, beat: Beat, actor_id: Optional[uuid.UUID] = None) -> bool:
        """
        Start duty if every assigned personnel has accepted.

        Caller must hold the beat's unit of work. Returns True only on the
        call that actually performed the transition.
        """
        if beat.status not in BeatStatus.OPEN_FOR_RESPONSES:
            return False
        if not beat_all_accepted(beat):
            return False

        now = self.clock()
        before = beat.to_dict()
        beat.status = BeatStatus.IN_PROGRESS
        beat.started_at = now
        beat.scheduled_end_at = next_end_after(beat.duty_end, now)
        beat.updated_at = now

        self.events.append_event(
            entity_type=EventLogService.BEAT,
            entity_id=beat.beat_id,
            operation=EventLogService.DUTY_AUTO_STARTED,
            before=before,
            after=beat.to_dict(),
            actor_id=actor_id,
            occurred_at=now,
        )
        self.logger.info(
            f"Beat {beat.beat_id} auto-started with {len(beat.current_assignments)} personnel, "
            f"scheduled end {beat.scheduled_end_at.isoformat()}Z"
        )
        return True

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    def end_duty(self, beat_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Beat:
        """Explicitly end an in-progress duty. No-op if already completed."""
        with beat_unit_of_work(self.db, beat_id) as beat:
            if beat.status == BeatStatus.COMPLETED:
                return beat
            if beat.status != BeatStatus.IN_PROGRESS:
                raise InvalidStateError(f"Beat is {beat.status}; only an in-progress duty can be ended")
            self._complete_locked(beat, CompletionTrigger.MANUAL, actor_id)
        return beat

    def complete_due_beats(self, now: Optional[datetime] = None) -> List[uuid.UUID]:
        """
        Complete every in-progress beat whose scheduled end has passed.

        Idempotent: beats already completed (manually or by an earlier tick)
        are skipped. A beat whose lock cannot be taken in time is left for
        the next tick.
        """
        now = now or self.clock()
        due_ids = [
            row.beat_id
            for row in self.db.query(Beat.beat_id)
            .filter(
                Beat.status == BeatStatus.IN_PROGRESS,
                Beat.scheduled_end_at <= now,
                Beat.deleted_at.is_(None),
            )
            .all()
        ]

        completed = []
        for beat_id in due_ids:
            try:
                with beat_unit_of_work(self.db, beat_id) as beat:
                    if beat.status != BeatStatus.IN_PROGRESS or beat.scheduled_end_at > now:
                        continue
                    self._complete_locked(beat, CompletionTrigger.SCHEDULED, None, at=now)
                    completed.append(beat_id)
            except (BeatLockTimeout, NotFoundError) as e:
                self.logger.warning(f"Scheduled end skipped for beat {beat_id}: {e}")

        if completed:
            self.logger.info(f"Scheduled end completed {len(completed)} beat(s)")
        return completed

    def _complete_locked(
        self,
        beat: Beat,
        trigger: str,
        actor_id: Optional[uuid.UUID],
        at: Optional[datetime] = None,
    ) -> None:
        now = at or self.clock()
        before = beat.to_dict()
        beat.status = BeatStatus.COMPLETED
        beat.completed_at = now
        beat.updated_at = now

        self.events.append_event(
            entity_type=EventLogService.BEAT,
            entity_id=beat.beat_id,
            operation=EventLogService.DUTY_ENDED,
            before=before,
            after=beat.to_dict(),
            actor_id=actor_id,
            correlation_id=trigger,
            occurred_at=now,
        )
        self.logger.info(f"Beat {beat.beat_id} completed ({trigger})")

    # -------------------------------------------------------------------------
    # Decline / reopen
    # -------------------------------------------------------------------------

    def mark_declined(self, beat_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Beat:
        """Close the current assignment cycle after a decline."""
        with beat_unit_of_work(self.db, beat_id) as beat:
            if beat.status not in BeatStatus.OPEN_FOR_RESPONSES:
                raise InvalidStateError(f"Beat is {beat.status}; only a pending beat can be declined")
            if not any(
                a.acceptance_status == AcceptanceStatus.DECLINED for a in beat.current_assignments
            ):
                raise InvalidStateError("No assigned personnel has declined this beat")

            now = self.clock()
            before = beat.to_dict()
            beat.status = BeatStatus.DECLINED
            beat.updated_at = now
            self.events.append_event(
                entity_type=EventLogService.BEAT,
                entity_id=beat.beat_id,
                operation=EventLogService.BEAT_DECLINED,
                before=before,
                after=beat.to_dict(),
                actor_id=actor_id,
                occurred_at=now,
            )
            self.logger.info(f"Beat {beat_id} marked declined")
        return beat

    def reopen_beat(self, beat_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Beat:
        """
        Reopen a declined beat once its decliners have been replaced or removed.

        If the remaining personnel have all accepted already, duty starts
        immediately.
        """
        with beat_unit_of_work(self.db, beat_id) as beat:
            if beat.status != BeatStatus.DECLINED:
                raise InvalidStateError(f"Beat is {beat.status}; only a declined beat can be reopened")
            declined = [
                a for a in beat.current_assignments
                if a.acceptance_status == AcceptanceStatus.DECLINED
            ]
            if declined:
                raise ConflictError(
                    "Replace or remove declining personnel before reopening",
                    details=[str(a.personnel_id) for a in declined],
                )

            now = self.clock()
            before = beat.to_dict()
            beat.status = BeatStatus.PENDING
            beat.updated_at = now
            self.events.append_event(
                entity_type=EventLogService.BEAT,
                entity_id=beat.beat_id,
                operation=EventLogService.BEAT_REOPENED,
                before=before,
                after=beat.to_dict(),
                actor_id=actor_id,
                occurred_at=now,
            )
            self.logger.info(f"Beat {beat_id} reopened")
            self.activate_locked(beat, actor_id=actor_id)
        return beat


class DutyTicker:
    """
    Periodic scheduled-end check on a daemon thread.

    Each tick opens its own session; a failed tick is logged and the next
    one retries, which is safe because complete_due_beats is idempotent.
    """

    def __init__(
        self,
        interval_seconds: Optional[float] = None,
        session_factory: Optional[Callable[[], DbSession]] = None,
    ):
        self.interval = interval_seconds or config.DUTY_TICK_SECONDS
        self.session_factory = session_factory
        self.logger = logging.getLogger("service.DutyTicker")
        self._stop = threading.Event()
        self._thread = None

    def _session(self):
        if self.session_factory is not None:
            return closing(self.session_factory())
        return session_scope()

    def tick(self) -> List[uuid.UUID]:
        try:
            with self._session() as db:
                return DutyScheduler(db).complete_due_beats()
        except Exception as e:
            self.logger.error(f"Duty tick failed: {e}", exc_info=True)
            return []

    def _run(self):
        while not self._stop.wait(self.interval):
            self.tick()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="duty-ticker", daemon=True)
        self._thread.start()
        self.logger.info(f"Duty ticker started (every {self.interval}s)")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
