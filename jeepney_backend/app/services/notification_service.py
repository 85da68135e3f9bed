"""
Notification Service.

Writes trip lifecycle events to the notification outbox and manages their
read state.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, desc
from typing import Optional, Dict, Any, List

from jeepney_backend.app.core.clock import local_now
from jeepney_backend.app.models.notification import Notification, NotificationType, RecipientType


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        recipient_type: RecipientType,
        recipient_id: Any,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            recipient_type=recipient_type,
            recipient_id=str(recipient_id),
            type=type,
            title=title,
            message=message,
            metadata_payload=metadata
        )
        db.add(notif)
        await db.flush()  # Caller commits
        return notif

    @staticmethod
    async def notify_trip_completed(db: AsyncSession, trip, method: str) -> List[Notification]:
        """Trip-completed event for both the passenger and the driver."""
        payload = {
            "trip_id": trip.trip_id,
            "destination": trip.destination,
            "fare": trip.fare,
            "method": method,
            "completed_at": trip.completed_at.isoformat() if trip.completed_at else None,
        }
        passenger = await NotificationService.create_notification(
            db, RecipientType.PASSENGER, trip.passenger_id,
            title="Trip completed",
            message=f"You have arrived at {trip.destination}.",
            type=NotificationType.TRIP_COMPLETED,
            metadata=payload
        )
        driver = await NotificationService.create_notification(
            db, RecipientType.DRIVER, trip.driver_id,
            title="Passenger dropped off",
            message=f"Trip {trip.trip_id} to {trip.destination} is complete.",
            type=NotificationType.TRIP_COMPLETED,
            metadata=payload
        )
        return [passenger, driver]

    @staticmethod
    async def notify_trip_started(db: AsyncSession, trip) -> Notification:
        return await NotificationService.create_notification(
            db, RecipientType.PASSENGER, trip.passenger_id,
            title="You're on board",
            message=f"Your trip to {trip.destination} has started.",
            type=NotificationType.TRIP_STARTED,
            metadata={"trip_id": trip.trip_id}
        )

    @staticmethod
    async def notify_trip_cancelled(db: AsyncSession, trip, reason: Optional[str] = None) -> Notification:
        return await NotificationService.create_notification(
            db, RecipientType.PASSENGER, trip.passenger_id,
            title="Trip cancelled",
            message=f"Your trip to {trip.destination} was cancelled.",
            type=NotificationType.TRIP_CANCELLED,
            metadata={"trip_id": trip.trip_id, "reason": reason}
        )

    @staticmethod
    async def list_for_recipient(
        db: AsyncSession,
        recipient_type: RecipientType,
        recipient_id: str,
        unread_only: bool = False,
        limit: int = 50
    ) -> List[Notification]:
        query = select(Notification).where(
            Notification.recipient_type == recipient_type,
            Notification.recipient_id == str(recipient_id)
        )
        if unread_only:
            query = query.where(Notification.is_read == False)
        query = query.order_by(desc(Notification.created_at), desc(Notification.id)).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, recipient_id: str) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.recipient_id == str(recipient_id)
        ).values(
            is_read=True,
            read_at=local_now()
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, recipient_type: RecipientType, recipient_id: str) -> int:
        """Mark all notifications for a recipient as read."""
        stmt = update(Notification).where(
            Notification.recipient_type == recipient_type,
            Notification.recipient_id == str(recipient_id),
            Notification.is_read == False
        ).values(
            is_read=True,
            read_at=local_now()
        )
        result = await db.execute(stmt)
        return result.rowcount
