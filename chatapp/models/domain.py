"""
Domain Models - Internal business logic models using dataclasses.

Immutable values passed between services; ORM rows never leave the service layer
except through these or through the API models.
"""

from dataclasses import dataclass, field
from uuid import UUID

from chatapp.models.api import ChatModel, MessageRole


@dataclass(frozen=True)
class TokenPair:
    """Access + refresh token issued together."""

    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of an access or refresh token."""

    user_id: UUID
    token_type: str  # "access" or "refresh"
    expires_at: int


@dataclass(frozen=True)
class ConversationSettings:
    """Generation settings of a conversation."""

    model: str = ChatModel.GPT_35_TURBO.value
    temperature: float = 0.7
    max_tokens: int = 1000

    def __post_init__(self) -> None:
        """Validate settings ranges."""
        if not 0 <= self.temperature <= 2:
            raise ValueError(f"Temperature out of range: {self.temperature}")
        if not 1 <= self.max_tokens <= 4000:
            raise ValueError(f"max_tokens out of range: {self.max_tokens}")


@dataclass(frozen=True)
class ChatTurn:
    """One prior turn handed to the response generator."""

    role: MessageRole
    content: str


@dataclass(frozen=True)
class GeneratedReply:
    """Output of a response generator."""

    content: str
    tokens: int
    processing_time_ms: int

    def __post_init__(self) -> None:
        """Validate reply constraints."""
        if not self.content:
            raise ValueError("Generated reply cannot be empty")
        if self.tokens < 0:
            raise ValueError(f"Token count cannot be negative: {self.tokens}")


@dataclass(frozen=True)
class NotificationPage:
    """One page of notifications plus counters."""

    items: list = field(default_factory=list)
    total: int = 0
    unread_count: int = 0
