"""
Notification Service

Writes per-user in-app notifications. Dispatch is fire and forget: it runs
after the primary transaction has committed, in its own session, and a
failure is logged without affecting the transition that triggered it.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dropmarket.core.events import RowChange, get_change_feed
from dropmarket.db_types import utc_now
from dropmarket.models.notifications import Notification, NotificationType

logger = logging.getLogger(__name__)


@dataclass
class NotificationMessage:
    user_id: uuid.UUID
    title: str
    message: str
    notification_type: NotificationType = NotificationType.SYSTEM
    related_id: Optional[uuid.UUID] = None
    related_type: Optional[str] = None


class NotificationService:
    """In-app notifications for consumers."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._dispatch_sessions = async_sessionmaker(db.bind, expire_on_commit=False)

    async def notify(
        self,
        user_id: uuid.UUID,
        title: str,
        message: str,
        notification_type: NotificationType = NotificationType.SYSTEM,
        related_id: Optional[uuid.UUID] = None,
        related_type: Optional[str] = None,
    ) -> int:
        return await self.notify_many([
            NotificationMessage(user_id, title, message, notification_type, related_id, related_type)
        ])

    async def notify_many(self, messages: Iterable[NotificationMessage]) -> int:
        """Insert notifications in one transaction. Returns the number written, 0 on failure."""
        messages = list(messages)
        if not messages:
            return 0

        rows = [
            Notification(
                user_id=m.user_id,
                title=m.title,
                message=m.message,
                notification_type=m.notification_type.value,
                related_id=m.related_id,
                related_type=m.related_type,
            )
            for m in messages
        ]
        try:
            async with self._dispatch_sessions() as session:
                session.add_all(rows)
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to send {len(rows)} notification(s): {e}")
            return 0

        logger.info(f"Sent {len(rows)} notification(s) of type {messages[0].notification_type.value}")
        await get_change_feed().publish_many([
            RowChange("notifications", row.id, "INSERT", {"user_id": str(row.user_id)})
            for row in rows
        ])
        return len(rows)

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712
        query = query.order_by(Notification.created_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def unread_count(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read == False,  # noqa: E712
            )
        )
        return result.scalar() or 0

    async def mark_read(self, user_id: uuid.UUID, notification_ids: Optional[List[uuid.UUID]] = None) -> int:
        """Mark the given notifications (or all of the user's) as read."""
        stmt = (
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
            .values(is_read=True, read_at=utc_now())
        )
        if notification_ids:
            stmt = stmt.where(Notification.id.in_(notification_ids))
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount or 0
