"""
Beat models: geofenced patrol zones and their personnel assignments.

These tables support:
1. Beat - circular patrol zone with duty schedule and lifecycle status
2. BeatAssignment - one row per (beat, personnel) assignment, carrying the
   personnel's acceptance sub-state

Assignment rows are never deleted once a personnel has responded; removal
sets removed_at so "who declined" stays auditable after a replacement.
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Integer, Float, Text, Time, Uuid, Index,
)
from sqlalchemy.orm import relationship

from beatwatch.db.postgres import Base


# =============================================================================
# Enums (as string constants)
# =============================================================================

class BeatStatus:
    """Beat lifecycle status values."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    # Geometry/schedule may only change while in one of these
    EDITABLE = (PENDING, ACCEPTED, DECLINED)
    # Personnel responses are collected while in one of these
    OPEN_FOR_RESPONSES = (PENDING, ACCEPTED)


class AcceptanceStatus:
    """Per-personnel acceptance values."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class Decision:
    """Response decisions a personnel can submit."""
    ACCEPT = "accept"
    DECLINE = "decline"

    ALL = (ACCEPT, DECLINE)


def _iso(value):
    return value.isoformat() if value else None


# =============================================================================
# Beat Model
# =============================================================================

class Beat(Base):
    """
    A circular geofenced patrol zone assigned to personnel for a daily window.

    duty_end <= duty_start means the window wraps past midnight;
    duty_start == duty_end is a full 24-hour window.
    """

    __tablename__ = "beat"

    beat_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    address = Column(Text, nullable=True)

    # Geometry
    center_lat = Column(Float, nullable=False)
    center_lng = Column(Float, nullable=False)
    radius_m = Column(Float, nullable=False)

    # Scope (partition keys, not interpreted by the engine)
    province = Column(String(100), nullable=True)
    unit = Column(String(100), nullable=True)
    sub_unit = Column(String(100), nullable=True)

    # Schedule (time-of-day in DUTY_TIMEZONE)
    duty_start = Column(Time, nullable=False)
    duty_end = Column(Time, nullable=False)

    # Lifecycle
    status = Column(String(20), default=BeatStatus.PENDING, nullable=False)
    violation_count = Column(Integer, default=0, nullable=False)
    started_at = Column(DateTime, nullable=True)
    scheduled_end_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Timestamps
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    assignments = relationship(
        "BeatAssignment",
        back_populates="beat",
        order_by="BeatAssignment.slot",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_beat_status", "status"),
        Index("ix_beat_scope", "province", "unit", "sub_unit"),
    )

    @property
    def current_assignments(self):
        """Assignments still holding a slot, in slot order."""
        return [a for a in self.assignments if a.removed_at is None]

    @property
    def assigned_personnel(self):
        return [a.personnel_id for a in self.current_assignments]

    def assignment_for(self, personnel_id: uuid.UUID):
        """Current assignment row for a personnel, or None."""
        for assignment in self.current_assignments:
            if assignment.personnel_id == personnel_id:
                return assignment
        return None

    def to_dict(self) -> dict:
        current = self.current_assignments
        accepted = sum(1 for a in current if a.acceptance_status == AcceptanceStatus.ACCEPTED)
        return {
            "beat_id": str(self.beat_id),
            "name": self.name,
            "address": self.address,
            "center": {"lat": self.center_lat, "lng": self.center_lng},
            "radius_m": self.radius_m,
            "province": self.province,
            "unit": self.unit,
            "sub_unit": self.sub_unit,
            "duty_start": self.duty_start.strftime("%H:%M") if self.duty_start else None,
            "duty_end": self.duty_end.strftime("%H:%M") if self.duty_end else None,
            "status": self.status,
            "assigned_personnel": [str(a.personnel_id) for a in current],
            "acceptance_progress": {"accepted": accepted, "total": len(current)},
            "violation_count": self.violation_count,
            "started_at": _iso(self.started_at),
            "scheduled_end_at": _iso(self.scheduled_end_at),
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }


# =============================================================================
# BeatAssignment Model
# =============================================================================

class BeatAssignment(Base):
    """
    A personnel's slot on a beat plus their acceptance sub-state.

    Exactly one current row (removed_at IS NULL) exists per assigned
    personnel; removed rows are kept as history.
    """

    __tablename__ = "beat_assignment"

    assignment_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    beat_id = Column(Uuid, ForeignKey("beat.beat_id"), nullable=False)
    personnel_id = Column(Uuid, nullable=False)
    slot = Column(Integer, nullable=False)

    acceptance_status = Column(String(20), default=AcceptanceStatus.PENDING, nullable=False)
    responded_at = Column(DateTime, nullable=True)  # first transition out of pending
    decline_reason = Column(Text, nullable=True)  # only while declined

    assigned_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    removed_at = Column(DateTime, nullable=True)

    beat = relationship("Beat", back_populates="assignments")

    __table_args__ = (
        Index(
            "uq_beat_assignment_current",
            "beat_id",
            "personnel_id",
            unique=True,
            postgresql_where=removed_at.is_(None),
            sqlite_where=removed_at.is_(None),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "assignment_id": str(self.assignment_id),
            "beat_id": str(self.beat_id),
            "personnel_id": str(self.personnel_id),
            "slot": self.slot,
            "status": self.acceptance_status,
            "timestamp": _iso(self.responded_at),
            "reason": self.decline_reason,
            "assigned_at": _iso(self.assigned_at),
            "removed_at": _iso(self.removed_at),
        }
