"""
Database Models - SQLAlchemy ORM models with strict typing.

One table per entity; every conversation, message and notification is owned
by exactly one user through a foreign key.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def default_preferences() -> dict[str, Any]:
    """Preferences given to new users."""
    return {"theme": "light", "notifications": {"email": True, "push": True}}


class User(Base):
    """
    ORM model for users table.

    Holds identity, password hash, credit balance, plan and preferences.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    username: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    plan: Mapped[str] = mapped_column(String(50), nullable=False, default="free")
    preferences: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, default=default_preferences
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
        Index("idx_users_is_active", "is_active"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<User(id={self.id}, username={self.username}, credits={self.credits})>"


class Conversation(Base):
    """
    ORM model for conversations table.

    Soft-deleted through is_active; aggregate counters are maintained by the
    send-message transaction.
    """

    __tablename__ = "conversations"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Settings
    model: Mapped[str] = mapped_column(String(50), nullable=False, default="gpt-3.5-turbo")
    temperature: Mapped[float] = mapped_column(Float, nullable=False, default=0.7)
    max_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)

    # Aggregates
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tokens: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=utc_now
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("message_count >= 0", name="ck_conversations_message_count"),
        CheckConstraint("total_tokens >= 0", name="ck_conversations_total_tokens"),
        CheckConstraint("temperature >= 0 AND temperature <= 2", name="ck_conversations_temperature"),
        CheckConstraint("max_tokens >= 1 AND max_tokens <= 4000", name="ck_conversations_max_tokens"),
        Index("idx_conversations_user_created", "user_id", "created_at"),
        Index("idx_conversations_user_active", "user_id", "is_active"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Conversation(id={self.id}, user_id={self.user_id}, "
            f"message_count={self.message_count})>"
        )


class Message(Base):
    """
    ORM model for messages table.

    Ordered by created_at within a conversation.
    """

    __tablename__ = "messages"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    conversation_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("conversations.id", ondelete="RESTRICT"),
        nullable=False,
    )
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)

    # Generation metadata
    tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    model: Mapped[str | None] = mapped_column(String(50), nullable=True)
    temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    parent_message_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("messages.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant', 'system')", name="ck_messages_role"),
        CheckConstraint("char_length(content) <= 10000", name="ck_messages_content_length"),
        Index("idx_messages_conversation_created", "conversation_id", "created_at"),
        Index("idx_messages_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Message(id={self.id}, conversation_id={self.conversation_id}, role={self.role})>"


class Notification(Base):
    """
    ORM model for notifications table.

    Pull-based: clients poll the listing endpoint.
    """

    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="info")

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    action_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    source: Mapped[str] = mapped_column(String(20), nullable=False, default="system")
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "type IN ('info', 'success', 'warning', 'error', 'credit', 'system')",
            name="ck_notifications_type",
        ),
        CheckConstraint(
            "source IN ('system', 'chat', 'billing', 'security')",
            name="ck_notifications_source",
        ),
        CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_notifications_priority"),
        Index("idx_notifications_user_created", "user_id", "created_at"),
        Index("idx_notifications_user_read", "user_id", "is_read"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Notification(id={self.id}, user_id={self.user_id}, is_read={self.is_read})>"
