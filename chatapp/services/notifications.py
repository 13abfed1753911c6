"""
Notification Service - Per-user notices with read state.

Listing is pull-based; newly created notifications are also pushed to the
owner's open websockets through the realtime hub.
"""

from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from chatapp.db.models import Notification, utc_now
from chatapp.exceptions import FieldError, NotificationNotFoundError, RequestValidationFailed
from chatapp.models.api import (
    NotificationItem,
    NotificationMetadataModel,
    NotificationPriority,
    NotificationSource,
    NotificationType,
)
from chatapp.models.domain import NotificationPage
from chatapp.services.realtime import RealtimeHub, get_realtime_hub

logger = get_logger(__name__)


def to_notification_item(notification: Notification) -> NotificationItem:
    """Convert ORM notification to its API shape."""
    return NotificationItem(
        id=notification.id,
        title=notification.title,
        message=notification.message,
        type=NotificationType(notification.type),
        is_read=notification.is_read,
        read_at=notification.read_at,
        action_url=notification.action_url,
        metadata=NotificationMetadataModel(
            source=NotificationSource(notification.source),
            priority=NotificationPriority(notification.priority),
        ),
        created_at=notification.created_at,
    )


class NotificationService:
    """Notification operations scoped to one user."""

    def __init__(self, db: AsyncSession, hub: RealtimeHub | None = None):
        self.db = db
        self.hub = hub or get_realtime_hub()

    async def list_notifications(
        self, user_id: UUID, page: int = 1, limit: int = 20, unread_only: bool = False
    ) -> NotificationPage:
        """Newest first; total honours the unread filter, unread_count never does."""
        filters = [Notification.user_id == user_id]
        if unread_only:
            filters.append(Notification.is_read.is_(False))

        stmt = (
            select(Notification)
            .where(*filters)
            .order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        items = list(result.scalars().all())

        total = (
            await self.db.execute(select(func.count(Notification.id)).where(*filters))
        ).scalar_one()
        unread_count = await self.count_unread(user_id)

        return NotificationPage(items=items, total=total, unread_count=unread_count)

    async def count_unread(self, user_id: UUID) -> int:
        """Number of unread notifications of a user."""
        stmt = select(func.count(Notification.id)).where(
            Notification.user_id == user_id, Notification.is_read.is_(False)
        )
        return (await self.db.execute(stmt)).scalar_one()

    async def mark_read(self, user_id: UUID, notification_id: UUID) -> Notification:
        """Mark one notification read."""
        notification = await self._get_owned_notification(user_id, notification_id)
        if notification is None:
            raise NotificationNotFoundError(notification_id)

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utc_now()
            await self.db.commit()
            await self.db.refresh(notification)
        return notification

    async def mark_all_read(self, user_id: UUID) -> int:
        """Mark every unread notification read; returns how many changed."""
        now = utc_now()
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=now, updated_at=now)
        )
        await self.db.commit()

        updated = result.rowcount or 0
        logger.info("notifications_marked_read", user_id=str(user_id), count=updated)
        return updated

    async def delete_notification(self, user_id: UUID, notification_id: UUID) -> None:
        """Hard-delete one notification."""
        result = await self.db.execute(
            delete(Notification).where(
                Notification.id == notification_id, Notification.user_id == user_id
            )
        )
        if not result.rowcount:
            await self.db.rollback()
            raise NotificationNotFoundError(notification_id)
        await self.db.commit()

    async def create_notification(
        self,
        user_id: UUID,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        action_url: str | None = None,
        source: NotificationSource = NotificationSource.SYSTEM,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
    ) -> Notification:
        """Store a notification and push it to the owner's open sockets."""
        if not title or len(title) > 100:
            raise RequestValidationFailed(
                [FieldError(field="title", message="Notification title must be 1-100 characters")]
            )
        if not message or len(message) > 500:
            raise RequestValidationFailed(
                [
                    FieldError(
                        field="message", message="Notification message must be 1-500 characters"
                    )
                ]
            )

        now = utc_now()
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type.value,
            is_read=False,
            action_url=action_url,
            source=source.value,
            priority=priority.value,
            created_at=now,
            updated_at=now,
        )
        self.db.add(notification)
        await self.db.commit()
        await self.db.refresh(notification)

        item = to_notification_item(notification)
        delivered = await self.hub.send_to_user(
            user_id, "notification", item.model_dump(mode="json", by_alias=True)
        )
        logger.info(
            "notification_created",
            notification_id=str(notification.id),
            user_id=str(user_id),
            delivered=delivered,
        )
        return notification

    async def _get_owned_notification(
        self, user_id: UUID, notification_id: UUID
    ) -> Notification | None:
        stmt = select(Notification).where(
            Notification.id == notification_id, Notification.user_id == user_id
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
