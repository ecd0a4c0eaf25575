"""
Backend services for BeatWatch.

- BeatRegistry: beat CRUD and pre-acceptance membership
- AcceptanceTracker: per-personnel accept/decline responses
- DutyScheduler / DutyTicker: lifecycle transitions and scheduled end
- ViolationDetector: position fixes to exit violations
- ReplacementLedger: personnel substitution history
- EventLogService: append-only audit events
- ProjectionService: realtime Firestore projection updates
"""

from .event_log import EventLogService
from .acceptance import AcceptanceTracker
from .duty_scheduler import DutyScheduler, DutyTicker, CompletionTrigger
from .beat_registry import BeatRegistry
from .violations import ViolationDetector
from .replacements import ReplacementLedger
from .projection import ProjectionService, get_projection_service

__all__ = [
    "EventLogService",
    "AcceptanceTracker",
    "DutyScheduler",
    "DutyTicker",
    "CompletionTrigger",
    "BeatRegistry",
    "ViolationDetector",
    "ReplacementLedger",
    "ProjectionService",
    "get_projection_service",
]
