"""
User Service - Profile updates and usage statistics.
"""

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from chatapp.db.models import Conversation, Message, Notification, User, utc_now
from chatapp.exceptions import ConflictError
from chatapp.models.api import UserStats

logger = get_logger(__name__)


def merge_preferences(current: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
    """Shallow merge: top-level keys in update replace those in current."""
    merged = dict(current or {})
    merged.update(update)
    return merged


class UserService:
    """Operations on the authenticated user's own record."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def update_profile(
        self,
        user: User,
        username: str | None = None,
        preferences: dict[str, Any] | None = None,
    ) -> User:
        """
        Change username and/or merge preferences.

        Raises:
            ConflictError: Another user owns the username (USERNAME_TAKEN)
        """
        if username and username != user.username:
            stmt = select(User.id).where(User.username == username, User.id != user.id)
            if (await self.db.execute(stmt)).scalar_one_or_none() is not None:
                raise ConflictError(code="USERNAME_TAKEN")
            user.username = username

        if preferences:
            user.preferences = merge_preferences(user.preferences, preferences)

        user.updated_at = utc_now()
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(code="USERNAME_TAKEN")

        await self.db.refresh(user)
        logger.info("profile_updated", user_id=str(user.id))
        return user

    async def get_stats(self, user: User) -> UserStats:
        """Counters shown on the dashboard."""
        conversations = (
            await self.db.execute(
                select(func.count(Conversation.id)).where(
                    Conversation.user_id == user.id, Conversation.is_active.is_(True)
                )
            )
        ).scalar_one()
        messages = (
            await self.db.execute(select(func.count(Message.id)).where(Message.user_id == user.id))
        ).scalar_one()
        unread = (
            await self.db.execute(
                select(func.count(Notification.id)).where(
                    Notification.user_id == user.id, Notification.is_read.is_(False)
                )
            )
        ).scalar_one()

        return UserStats(
            conversations=conversations,
            messages=messages,
            unread_notifications=unread,
            credits=user.credits,
            plan=user.plan,
        )
