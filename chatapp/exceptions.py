"""
Exception Classes - Strongly typed exception hierarchy.

Every error carries an HTTP status and a stable machine-readable code.
The application exception handler renders them as {message, code}.
"""

from dataclasses import dataclass
from uuid import UUID


class ChatAppError(Exception):
    """Base exception for all application errors."""

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code or self.default_code
        super().__init__(message)


# ============================================================================
# Authentication
# ============================================================================


class AuthError(ChatAppError):
    """Base class for 401 authentication failures."""

    status_code = 401
    default_code = "AUTH_ERROR"


class NoTokenError(AuthError):
    """Raised when no bearer token was presented."""

    default_code = "NO_TOKEN"

    def __init__(self) -> None:
        super().__init__("Access token required")


class InvalidTokenError(AuthError):
    """Raised when a token is malformed or its signature does not verify."""

    default_code = "INVALID_TOKEN"

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class TokenExpiredError(AuthError):
    """Raised when a token is past its expiry."""

    default_code = "TOKEN_EXPIRED"

    def __init__(self) -> None:
        super().__init__("Token expired")


class InvalidUserError(AuthError):
    """Raised when a token resolves to a missing or inactive user."""

    default_code = "INVALID_USER"

    def __init__(self, message: str = "Invalid or inactive user") -> None:
        super().__init__(message)


class InvalidCredentialsError(AuthError):
    """Raised on unknown username or wrong password (same message for both)."""

    default_code = "INVALID_CREDENTIALS"

    def __init__(self) -> None:
        super().__init__("Invalid username or password")


class AccountDeactivatedError(AuthError):
    """Raised when a deactivated user logs in."""

    default_code = "ACCOUNT_DEACTIVATED"

    def __init__(self) -> None:
        super().__init__("Account is deactivated")


class InvalidRefreshTokenError(AuthError):
    """Raised when a refresh token is missing, invalid, or not a refresh token."""

    default_code = "INVALID_REFRESH_TOKEN"

    def __init__(self, message: str = "Invalid refresh token", code: str | None = None) -> None:
        super().__init__(message, code)


class AuthenticationFailure(ChatAppError):
    """Raised when token resolution fails for an unclassified reason."""

    status_code = 500
    default_code = "AUTH_ERROR"

    def __init__(self) -> None:
        super().__init__("Authentication error")


# ============================================================================
# Request / Resource Errors
# ============================================================================


@dataclass(frozen=True)
class FieldError:
    """One field-level validation failure."""

    field: str
    message: str


class RequestValidationFailed(ChatAppError):
    """Raised when request data fails validation; carries per-field errors."""

    status_code = 400
    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        errors: list[FieldError] | None = None,
        message: str = "Validation failed",
        code: str | None = None,
    ) -> None:
        self.errors = errors or []
        super().__init__(message, code)


class ConflictError(ChatAppError):
    """Raised when a unique resource already exists."""

    status_code = 409
    default_code = "USER_EXISTS"

    def __init__(self, message: str = "Username already taken", code: str | None = None) -> None:
        super().__init__(message, code)


class NotFoundError(ChatAppError):
    """Raised when an owned resource does not exist."""

    status_code = 404
    default_code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: UUID | str, code: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found", code)


class ConversationNotFoundError(NotFoundError):
    """Raised when a conversation is missing, inactive, or owned by someone else."""

    def __init__(self, conversation_id: UUID | str) -> None:
        super().__init__("Conversation", conversation_id, "CONVERSATION_NOT_FOUND")


class NotificationNotFoundError(NotFoundError):
    """Raised when a notification is missing or owned by someone else."""

    def __init__(self, notification_id: UUID | str) -> None:
        super().__init__("Notification", notification_id, "NOTIFICATION_NOT_FOUND")


class InsufficientCreditsError(ChatAppError):
    """Raised when the caller cannot pay for a chat turn."""

    status_code = 402
    default_code = "INSUFFICIENT_CREDITS"

    def __init__(self, balance: int, required: int = 1) -> None:
        self.balance = balance
        self.required = required
        super().__init__("Insufficient credits")


class GenerationError(ChatAppError):
    """Raised when the response generator fails; surfaced as a generic 500."""

    status_code = 500
    default_code = "SEND_MESSAGE_ERROR"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__("Failed to send message")


class RateLimitExceededError(ChatAppError):
    """Raised when a client exceeds the request cap of the current window."""

    status_code = 429
    default_code = "RATE_LIMITED"

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__("Too many requests from this IP, please try again later.")
