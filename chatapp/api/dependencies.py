"""
FastAPI Dependencies - Bearer-token authentication and service wiring.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from chatapp.db.models import User
from chatapp.db.session import get_db
from chatapp.exceptions import (
    AuthenticationFailure,
    AuthError,
    InvalidTokenError,
    InvalidUserError,
    NoTokenError,
    TokenExpiredError,
)
from chatapp.observability import metrics
from chatapp.services.auth import AuthService
from chatapp.services.chat import ChatService
from chatapp.services.generation import ResponseGenerator, get_response_generator
from chatapp.services.notifications import NotificationService
from chatapp.services.tokens import TokenService, get_token_service
from chatapp.services.users import UserService

logger = get_logger(__name__)

# Bearer token scheme; missing header is reported as NO_TOKEN rather than 403
bearer_scheme = HTTPBearer(auto_error=False)


async def resolve_user(token: str, db: AsyncSession, tokens: TokenService) -> User:
    """
    Resolve an access token to an active user.

    Shared by the REST dependency and the websocket handshake.

    Raises:
        InvalidTokenError, TokenExpiredError: Token does not verify
        InvalidUserError: User missing or inactive
        AuthenticationFailure: Unclassified failure during lookup
    """
    try:
        claims = tokens.verify_access(token)
        user = await AuthService(db, token_service=tokens).get_active_user(claims.user_id)
    except (InvalidTokenError, TokenExpiredError) as e:
        metrics.record_auth_failure(e.code.lower())
        raise
    except AuthError:
        raise
    except Exception as e:
        metrics.record_auth_failure("auth_error")
        logger.exception("authentication_lookup_failed", error=str(e))
        raise AuthenticationFailure() from e

    if user is None:
        metrics.record_auth_failure("invalid_user")
        raise InvalidUserError()
    return user


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> User:
    """
    FastAPI dependency resolving Authorization: Bearer {token} to a live user.

    Attaches the user to request.state.user for downstream middleware.

    Raises:
        NoTokenError: No bearer token presented
        InvalidTokenError / TokenExpiredError / InvalidUserError: 401
        AuthenticationFailure: 500
    """
    if credentials is None or not credentials.credentials:
        metrics.record_auth_failure("no_token")
        raise NoTokenError()

    user = await resolve_user(credentials.credentials, db, tokens)
    request.state.user = user
    return user


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> AuthService:
    """AuthService bound to the request session."""
    return AuthService(db, token_service=tokens)


def get_chat_service(
    db: AsyncSession = Depends(get_db),
    generator: ResponseGenerator = Depends(get_response_generator),
) -> ChatService:
    """ChatService bound to the request session."""
    return ChatService(db, generator)


def get_notification_service(db: AsyncSession = Depends(get_db)) -> NotificationService:
    """NotificationService bound to the request session."""
    return NotificationService(db)


def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    """UserService bound to the request session."""
    return UserService(db)
