#!/usr/bin/env python3
"""
Seed Notifications Script

Inserts the sample notifications shown by the dashboard for one user.
Goes through NotificationService, so the user's open websockets in this
process would receive them too (normally there are none).
"""

import argparse
import asyncio
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog
from sqlalchemy import select

from chatapp.db.models import User
from chatapp.db.session import close_engines, get_session
from chatapp.models.api import NotificationPriority, NotificationSource, NotificationType
from chatapp.services.notifications import NotificationService

logger = structlog.get_logger()

SAMPLE_NOTIFICATIONS = (
    {
        "title": "Welcome to Chat",
        "message": "Your account is ready. Start a conversation to talk with the assistant.",
        "type": NotificationType.SUCCESS,
        "source": NotificationSource.SYSTEM,
        "priority": NotificationPriority.MEDIUM,
    },
    {
        "title": "Free credits added",
        "message": "Your plan includes free credits. Each message you send uses one credit.",
        "type": NotificationType.CREDIT,
        "source": NotificationSource.BILLING,
        "priority": NotificationPriority.HIGH,
    },
    {
        "title": "Tip: organise your chats",
        "message": "Rename conversations from the sidebar to find them again later.",
        "type": NotificationType.INFO,
        "source": NotificationSource.CHAT,
        "priority": NotificationPriority.LOW,
    },
    {
        "title": "Security reminder",
        "message": "Never share your password. Sign out on shared devices.",
        "type": NotificationType.WARNING,
        "source": NotificationSource.SECURITY,
        "priority": NotificationPriority.MEDIUM,
    },
)


async def seed(username: str) -> int:
    """Create the sample notifications for username; returns how many were created."""
    async with get_session() as session:
        result = await session.execute(select(User).where(User.username == username))
        user = result.scalar_one_or_none()
        if user is None:
            logger.error("seed_user_not_found", username=username)
            return 0

        service = NotificationService(session)
        for sample in SAMPLE_NOTIFICATIONS:
            await service.create_notification(user.id, **sample)

    logger.info("seed_notifications_created", username=username, count=len(SAMPLE_NOTIFICATIONS))
    return len(SAMPLE_NOTIFICATIONS)


async def run(username: str) -> int:
    try:
        return await seed(username)
    finally:
        await close_engines()


def main():
    parser = argparse.ArgumentParser(
        description="Insert sample notifications for a user",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  DATABASE_URL=postgresql+asyncpg://... JWT_SECRET=... python3 seed_notifications.py alice
        """,
    )
    parser.add_argument("username", help="Username to seed notifications for")
    args = parser.parse_args()

    created = asyncio.run(run(args.username))
    sys.exit(0 if created else 1)


if __name__ == "__main__":
    main()
