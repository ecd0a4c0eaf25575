"""
Violation model: a position fix for on-duty personnel outside the beat radius.

Rows are created by the ViolationDetector and never deleted; only the
status moves (pending -> acknowledged -> resolved) on explicit actor action.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Float, Uuid, Index

from beatwatch.db.postgres import Base


class ViolationKind:
    """Violation kinds. Only leaving the zone is detected."""
    EXIT = "exit"


class ViolationStatus:
    """Violation status values."""
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class Violation(Base):
    """An exit event raised for one fix of one personnel on one beat."""

    __tablename__ = "beat_violation"

    violation_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    beat_id = Column(Uuid, ForeignKey("beat.beat_id"), nullable=False)
    personnel_id = Column(Uuid, nullable=False)

    kind = Column(String(20), default=ViolationKind.EXIT, nullable=False)
    fix_timestamp = Column(DateTime, nullable=False)
    location_lat = Column(Float, nullable=False)
    location_lng = Column(Float, nullable=False)
    distance_from_center_m = Column(Float, nullable=False)  # always > beat radius

    status = Column(String(20), default=ViolationStatus.PENDING, nullable=False)
    acknowledged_at = Column(DateTime, nullable=True)
    acknowledged_by = Column(Uuid, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(Uuid, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_beat_violation_beat_status", "beat_id", "status"),
    )

    @property
    def response_seconds(self):
        """Seconds between detection and acknowledgement, if acknowledged."""
        if self.acknowledged_at is None or self.created_at is None:
            return None
        return int((self.acknowledged_at - self.created_at).total_seconds())

    def to_dict(self) -> dict:
        return {
            "violation_id": str(self.violation_id),
            "beat_id": str(self.beat_id),
            "personnel_id": str(self.personnel_id),
            "kind": self.kind,
            "timestamp": self.fix_timestamp.isoformat() if self.fix_timestamp else None,
            "location": {"lat": self.location_lat, "lng": self.location_lng},
            "distance_from_center_m": self.distance_from_center_m,
            "status": self.status,
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            "acknowledged_by": str(self.acknowledged_by) if self.acknowledged_by else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": str(self.resolved_by) if self.resolved_by else None,
            "response_seconds": self.response_seconds,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
