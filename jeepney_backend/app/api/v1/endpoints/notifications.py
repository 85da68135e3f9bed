"""
Notification API Endpoints.

Read side of the trip event outbox for passenger and driver apps.
"""

from fastapi import APIRouter, Depends, HTTPException, status, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from jeepney_backend.app.db.session import get_db
from jeepney_backend.app.models.notification import RecipientType
from jeepney_backend.app.services.notification_service import NotificationService
from jeepney_backend.app.schemas.notification import NotificationResponse

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    recipient_type: RecipientType = Query(...),
    recipient_id: str = Query(..., min_length=1),
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db)
):
    """List a recipient's notifications, newest first."""
    return await NotificationService.list_for_recipient(
        db, recipient_type, recipient_id, unread_only=unread_only, limit=limit
    )


@router.patch("/{notification_id}/read")
async def mark_notification_read(
    notification_id: int = Path(...),
    recipient_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db)
):
    """Mark a specific notification as read."""
    success = await NotificationService.mark_read(db, notification_id, recipient_id)
    if not success:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")

    await db.commit()
    return {"status": "success"}


@router.patch("/read-all")
async def mark_all_notifications_read(
    recipient_type: RecipientType = Query(...),
    recipient_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db)
):
    """Mark all notifications as read."""
    count = await NotificationService.mark_all_read(db, recipient_type, recipient_id)
    await db.commit()
    return {"status": "success", "count": count}
