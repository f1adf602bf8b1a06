"""
Notification Service.

Handles creation and state management of notifications. Methods flush but
never commit; the calling handler owns the transaction.
"""

import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func, desc
from typing import Optional, Dict, Any, List, Tuple

from backend.finpanel.core.exceptions import ResourceNotFoundError
from backend.finpanel.models.notification import Notification, NotificationType
from backend.finpanel.models.user import User
from backend.finpanel.models.enums import UserRole

logger = logging.getLogger("finpanel.notifications")


class NotificationService:

    @staticmethod
    async def notify(
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: str = NotificationType.INFO,
        data: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            data=data,
            read=False
        )
        db.add(notif)
        await db.flush()  # Caller commits
        return notif

    @staticmethod
    async def notify_admins(
        db: AsyncSession,
        title: str,
        message: str,
        type: str = NotificationType.INFO,
        data: Optional[Dict[str, Any]] = None
    ) -> int:
        """Send the same notification to every active admin. Returns the recipient count."""
        result = await db.execute(
            select(User.id).where(User.role == UserRole.ADMIN, User.is_active == True)  # noqa: E712
        )
        admin_ids = result.scalars().all()

        notifications = [
            Notification(user_id=uid, title=title, message=message, type=type, data=data, read=False)
            for uid in admin_ids
        ]

        if notifications:
            db.add_all(notifications)
            await db.flush()
        else:
            logger.warning("No active admins to notify for '%s'", title)

        return len(notifications)

    @staticmethod
    async def list_unread(db: AsyncSession, user_id: int, limit: int = 50) -> Tuple[List[Notification], int]:
        """Newest unread notifications for a user, plus the total unread count."""
        result = await db.execute(
            select(Notification)
            .where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
            .order_by(desc(Notification.created_at), desc(Notification.id))
            .limit(limit)
        )
        unread = list(result.scalars().all())

        total = (await db.execute(
            select(func.count(Notification.id))
            .where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
        )).scalar_one()

        return unread, total

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> Notification:
        """
        Mark one of the user's notifications as read.

        Raises:
            ResourceNotFoundError: missing, or owned by someone else
        """
        notif = await db.get(Notification, notification_id)
        if notif is None or notif.user_id != user_id:
            raise ResourceNotFoundError("Notification", notification_id)

        notif.read = True
        await db.flush()
        return notif

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        """Mark all unread notifications for user as read. Returns how many changed."""
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.read == False  # noqa: E712
        ).values(read=True)
        result = await db.execute(stmt)
        return result.rowcount

    @staticmethod
    async def delete(db: AsyncSession, notification_id: int, user_id: int) -> None:
        """Delete one of the user's notifications (same ownership rule as mark_read)."""
        result = await db.execute(
            delete(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id
            )
        )
        if result.rowcount == 0:
            raise ResourceNotFoundError("Notification", notification_id)
