"""
SQLAlchemy models for BeatWatch.

These are the authoritative PostgreSQL tables.
"""

from .beat import Beat, BeatAssignment, BeatStatus, AcceptanceStatus, Decision
from .violation import Violation, ViolationKind, ViolationStatus
from .replacement import ReplacementRecord
from .event_log import EventLog

__all__ = [
    # Beats
    "Beat",
    "BeatAssignment",
    "BeatStatus",
    "AcceptanceStatus",
    "Decision",
    # Violations
    "Violation",
    "ViolationKind",
    "ViolationStatus",
    # Replacement ledger
    "ReplacementRecord",
    # Audit
    "EventLog",
]
