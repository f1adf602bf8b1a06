"""
Notification API Endpoints.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.finpanel.db.session import get_db
from backend.finpanel.core.dependencies import Identity, get_current_user
from backend.finpanel.services.notification_service import NotificationService
from backend.finpanel.schemas.notification import (
    NotificationResponse, NotificationListResponse, MarkAllReadResponse
)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(50, ge=1, le=100),
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the current user's unread notifications, newest first."""
    unread, unread_count = await NotificationService.list_unread(db, identity.id, limit=limit)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in unread],
        unread_count=unread_count
    )


@router.patch("/mark-all-read", response_model=MarkAllReadResponse)
async def mark_all_notifications_read(
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark all notifications as read."""
    count = await NotificationService.mark_all_read(db, identity.id)
    await db.commit()
    return MarkAllReadResponse(message="All notifications marked as read", updated=count)


@router.patch("/{notification_id}", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int = Path(...),
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark a specific notification as read."""
    notification = await NotificationService.mark_read(db, notification_id, identity.id)
    await db.commit()
    return NotificationResponse.model_validate(notification)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: int = Path(...),
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delete one of the current user's notifications."""
    await NotificationService.delete(db, notification_id, identity.id)
    await db.commit()
