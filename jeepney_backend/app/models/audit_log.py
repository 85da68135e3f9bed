"""
Audit Log Database Model.

Tracks fare-matrix edits and trip lifecycle events for audit and
debugging.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, Index
from jeepney_backend.app.db.session import Base
from jeepney_backend.app.core.clock import local_now


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - FARE_ENTRY_CREATED / FARE_ENTRY_UPDATED / FARE_ENTRY_DELETED
    - FARE_MATRIX_GENERATED / FARE_DUPLICATES_CLEANED
    - TRIP_BOOKED / TRIP_COMPLETED / TRIP_CANCELLED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, nullable=True)
    actor_username = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # What it was performed on
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(64), nullable=True)

    # Additional context (old/new values, rule that fired)
    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime, default=local_now, nullable=False, index=True)

    __table_args__ = (
        Index('ix_audit_entity', 'entity_type', 'entity_id'),
    )

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
