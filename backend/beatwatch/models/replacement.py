"""
Personnel replacement history (append-only ledger).

One row per substitution event on a beat. Rows are immutable once written;
corrections are new rows. The full history of who held a slot is read from
here, never reconstructed by diffing beat snapshots.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, DateTime, ForeignKey, Text, Uuid, Index

from beatwatch.db.postgres import Base


class ReplacementRecord(Base):
    """
    A substitution on a beat.

    old_personnel_id is null when an empty slot was filled;
    new_personnel_id is null on a pure removal. Never both.
    """

    __tablename__ = "personnel_replacement_history"

    record_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    beat_id = Column(Uuid, ForeignKey("beat.beat_id"), nullable=False)
    old_personnel_id = Column(Uuid, nullable=True)
    new_personnel_id = Column(Uuid, nullable=True)
    reason = Column(Text, nullable=False)
    replaced_at = Column(DateTime, nullable=False)

    recorded_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_replacement_beat_replaced_at", "beat_id", "replaced_at"),
    )

    def to_dict(self) -> dict:
        return {
            "type": "replacement",
            "record_id": str(self.record_id),
            "beat_id": str(self.beat_id),
            "old_personnel_id": str(self.old_personnel_id) if self.old_personnel_id else None,
            "new_personnel_id": str(self.new_personnel_id) if self.new_personnel_id else None,
            "reason": self.reason,
            "replaced_at": self.replaced_at.isoformat() if self.replaced_at else None,
            "recorded_by": str(self.recorded_by) if self.recorded_by else None,
        }
