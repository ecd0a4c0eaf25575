"""
Event log model for audit.

Append-only ledger: one row per state transition with before/after
snapshots. Consumed by the external audit subsystem.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Uuid, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB

from beatwatch.db.postgres import Base


class EventLog(Base):
    """Append-only audit ledger."""

    __tablename__ = "event_log"

    event_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    entity_type = Column(String(50), nullable=False)  # beat, assignment, violation, replacement
    entity_id = Column(Uuid, nullable=False)
    operation = Column(String(100), nullable=False)  # duty.auto_started, violation.created, etc.

    # Snapshots (JSONB on PostgreSQL)
    before_json = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    after_json = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)

    actor_id = Column(Uuid, nullable=True)  # None for system-driven transitions

    # Timestamps and correlation
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    correlation_id = Column(String(100), nullable=True)

    __table_args__ = (
        Index("ix_event_log_entity", "entity_type", "entity_id"),
    )

    def to_dict(self) -> dict:
        return {
            "event_id": str(self.event_id),
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id),
            "operation": self.operation,
            "before": self.before_json,
            "after": self.after_json,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "correlation_id": self.correlation_id,
        }
