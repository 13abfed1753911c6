"""
API Models - Pydantic models for request/response validation.

JSON bodies use camelCase keys; either camelCase or snake_case is accepted on input.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")


class MessageRole(str, Enum):
    """Author of a chat turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatModel(str, Enum):
    """Model names a conversation may be configured with."""

    GPT_35_TURBO = "gpt-3.5-turbo"
    GPT_4 = "gpt-4"
    CLAUDE_3_SONNET = "claude-3-sonnet"
    CLAUDE_3_HAIKU = "claude-3-haiku"


class NotificationType(str, Enum):
    """Notification type enumeration."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    CREDIT = "credit"
    SYSTEM = "system"


class NotificationSource(str, Enum):
    """Subsystem that raised a notification."""

    SYSTEM = "system"
    CHAT = "chat"
    BILLING = "billing"
    SECURITY = "security"


class NotificationPriority(str, Enum):
    """Notification priority enumeration."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CamelModel(BaseModel):
    """Base model serialising to camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ============================================================================
# Error Models
# ============================================================================


class FieldErrorItem(CamelModel):
    """Single field-level validation failure."""

    field: str
    message: str


class ErrorResponse(CamelModel):
    """Shape of every error body."""

    message: str
    code: str
    errors: list[FieldErrorItem] | None = None
    error: str | None = None


# ============================================================================
# User / Auth Models
# ============================================================================


def _validate_username(v: str) -> str:
    v = v.strip()
    if not 3 <= len(v) <= 30:
        raise ValueError("Username must be between 3 and 30 characters")
    if not USERNAME_PATTERN.match(v):
        raise ValueError("Username can only contain letters, numbers, and underscores")
    return v


class Credentials(CamelModel):
    """POST /api/auth/register request body."""

    username: str
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Usernames are trimmed word characters."""
        return _validate_username(v)


class LoginRequest(CamelModel):
    """
    POST /api/auth/login request body.

    Only presence is checked; a password that fails the registration rules
    is still a wrong password and gets 401 INVALID_CREDENTIALS.
    """

    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Username is required")
        return v


class RefreshRequest(CamelModel):
    """POST /api/auth/refresh request body."""

    refresh_token: str | None = None


class UserResponse(CamelModel):
    """Public view of a user; never carries the password hash."""

    id: UUID
    username: str
    credits: int
    plan: str
    preferences: dict
    last_login: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AuthResponse(CamelModel):
    """Register / login response."""

    message: str
    user: UserResponse
    token: str
    refresh_token: str


class TokenRefreshResponse(CamelModel):
    """POST /api/auth/refresh response."""

    message: str
    token: str
    refresh_token: str


class UserEnvelope(CamelModel):
    """{user} envelope for GET /auth/me and GET /user/profile."""

    user: UserResponse


class NotificationPreferences(CamelModel):
    """Notification channel toggles."""

    model_config = ConfigDict(extra="allow")

    email: bool | None = None
    push: bool | None = None


class PreferencesUpdate(CamelModel):
    """Partial preferences; merged over the stored ones."""

    model_config = ConfigDict(extra="allow")

    theme: Literal["light", "dark"] | None = None
    notifications: NotificationPreferences | None = None


class ProfileUpdateRequest(CamelModel):
    """PUT /api/user/profile request body."""

    username: str | None = None
    preferences: PreferencesUpdate | None = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str | None) -> str | None:
        """Same rules as registration."""
        if v is None:
            return v
        return _validate_username(v)


class ProfileUpdateResponse(CamelModel):
    """PUT /api/user/profile response."""

    message: str
    user: UserResponse


class UserStats(CamelModel):
    """Aggregate counters for a user."""

    conversations: int
    messages: int
    unread_notifications: int
    credits: int
    plan: str


class UserStatsResponse(CamelModel):
    """GET /api/user/stats response."""

    stats: UserStats


# ============================================================================
# Conversation Models
# ============================================================================


class ConversationSettingsModel(CamelModel):
    """Generation settings stored on a conversation."""

    model: ChatModel = ChatModel.GPT_35_TURBO
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=1000, ge=1, le=4000)


class CreateConversationRequest(CamelModel):
    """POST /api/chat/conversations request body."""

    title: str = Field(..., max_length=100)
    settings: ConversationSettingsModel | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Titles are trimmed and non-empty."""
        v = v.strip()
        if not v:
            raise ValueError("Conversation title is required")
        return v


class UpdateConversationRequest(CamelModel):
    """PUT /api/chat/conversations/:id request body; blank titles are rejected by the route."""

    title: str | None = Field(None, max_length=100)


class ConversationSummary(CamelModel):
    """Conversation as listed and returned by create/update."""

    id: UUID
    title: str
    created_at: datetime
    updated_at: datetime
    message_count: int
    last_message_at: datetime | None = None


class ConversationListResponse(CamelModel):
    """GET /api/chat/conversations response."""

    conversations: list[ConversationSummary]


class ConversationResponse(CamelModel):
    """Create / update conversation response."""

    message: str
    conversation: ConversationSummary


class ConversationDeletedResponse(CamelModel):
    """DELETE /api/chat/conversations/:id response."""

    message: str
    conversation_id: UUID


# ============================================================================
# Message Models
# ============================================================================


class MessageMetadataModel(CamelModel):
    """Generation metadata attached to a turn."""

    tokens: int = 0
    model: str | None = None
    temperature: float | None = None
    processing_time: int = 0


class SendMessageRequest(CamelModel):
    """POST /api/chat/conversations/:id/messages request body."""

    content: str = Field(..., max_length=10000)

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """Message content is trimmed and non-empty."""
        v = v.strip()
        if not v:
            raise ValueError("Message content is required")
        return v


class MessageItem(CamelModel):
    """Single chat turn."""

    id: UUID
    content: str
    role: MessageRole
    created_at: datetime
    is_edited: bool = False
    edited_at: datetime | None = None
    metadata: MessageMetadataModel | None = None


class MessagePagination(CamelModel):
    """Pagination block for message listings."""

    page: int
    limit: int
    total: int


class MessageListResponse(CamelModel):
    """GET /api/chat/conversations/:id/messages response."""

    messages: list[MessageItem]
    pagination: MessagePagination


class SendMessageResponse(CamelModel):
    """POST /api/chat/conversations/:id/messages response."""

    message: str
    user_message: MessageItem
    ai_message: MessageItem
    credits: int


# ============================================================================
# Notification Models
# ============================================================================


class NotificationMetadataModel(CamelModel):
    """Origin and urgency of a notification."""

    source: NotificationSource = NotificationSource.SYSTEM
    priority: NotificationPriority = NotificationPriority.MEDIUM


class NotificationItem(CamelModel):
    """Single notification."""

    id: UUID
    title: str
    message: str
    type: NotificationType
    is_read: bool
    read_at: datetime | None = None
    action_url: str | None = None
    metadata: NotificationMetadataModel | None = None
    created_at: datetime


class NotificationPagination(CamelModel):
    """Pagination block for notification listings."""

    page: int
    limit: int
    total: int
    unread_count: int


class NotificationListResponse(CamelModel):
    """GET /api/user/notifications response."""

    notifications: list[NotificationItem]
    pagination: NotificationPagination


class NotificationResponse(CamelModel):
    """PUT /api/user/notifications/:id/read response."""

    message: str
    notification: NotificationItem


class MessageOnlyResponse(CamelModel):
    """Acknowledgement body for mutations without a payload."""

    message: str


# ============================================================================
# Health
# ============================================================================


class HealthResponse(CamelModel):
    """GET /api/health response."""

    status: str
    timestamp: str
    uptime: float
