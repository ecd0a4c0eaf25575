"""
Error taxonomy for the beat duty engine.

All BeatWatchError subclasses are caller-visible usage errors and are never
retried by the engine. Store-layer failures (connection errors, timeouts)
propagate unmodified; BeatLockTimeout is the only transient error raised by
the engine itself.
"""

from typing import List, Optional


class BeatWatchError(Exception):
    """Base class for engine errors. Carries the HTTP status used by the API."""

    status_code = 400

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> dict:
        return {
            "ok": False,
            "error": self.message,
            "error_type": self.__class__.__name__,
            "details": self.details,
        }


class ValidationError(BeatWatchError):
    """Malformed input, rejected before any mutation."""

    status_code = 400


class NotFoundError(BeatWatchError):
    """Referenced entity id does not exist."""

    status_code = 404


class InvalidStateError(BeatWatchError):
    """Operation not permitted in the current lifecycle state."""

    status_code = 409


class ConflictError(BeatWatchError):
    """Operation would violate an invariant involving other live state."""

    status_code = 409


class BeatLockTimeout(TimeoutError):
    """The per-beat lock could not be acquired within the configured bound."""

    status_code = 503

    def __init__(self, beat_id):
        super().__init__(f"Timed out waiting for lock on beat {beat_id}")
        self.beat_id = beat_id
