"""
Notification Database Model.

Outbox of events for the push/UI layer (trip completed, trip started).
Delivery itself is handled elsewhere.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON, Enum, Index
from jeepney_backend.app.db.session import Base
from jeepney_backend.app.core.clock import local_now
import enum


class NotificationType(str, enum.Enum):
    INFO = "INFO"
    TRIP_STARTED = "TRIP_STARTED"
    TRIP_COMPLETED = "TRIP_COMPLETED"
    TRIP_CANCELLED = "TRIP_CANCELLED"


class RecipientType(str, enum.Enum):
    PASSENGER = "PASSENGER"
    DRIVER = "DRIVER"


class Notification(Base):
    """
    In-App Notification.
    Stores messages for passengers and drivers.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Recipient (passenger ids are external strings, drivers are stringified ints)
    recipient_type = Column(Enum(RecipientType), nullable=False)
    recipient_id = Column(String(100), nullable=False)

    # Content
    type = Column(Enum(NotificationType), default=NotificationType.INFO, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    metadata_payload = Column(JSON, nullable=True)

    # State
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=local_now, nullable=False)

    __table_args__ = (
        Index('ix_notifications_recipient', 'recipient_type', 'recipient_id', 'is_read'),
    )

    def __repr__(self):
        return f"<Notification(id={self.id}, to={self.recipient_type.value}:{self.recipient_id}, title='{self.title}')>"
