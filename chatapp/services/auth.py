"""
Auth Service - Registration, login and refresh-token exchange.

Passwords are stored as Argon2id hashes; the plaintext is never logged.
"""

from uuid import UUID

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from chatapp.config import settings
from chatapp.db.models import User, default_preferences, utc_now
from chatapp.exceptions import (
    AccountDeactivatedError,
    AuthError,
    ConflictError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    InvalidUserError,
)
from chatapp.models.domain import TokenPair
from chatapp.observability import metrics
from chatapp.services.tokens import TokenService, get_token_service

logger = get_logger(__name__)

# Verified against when the username is unknown so both failure paths hash once.
_DUMMY_HASH = PasswordHasher().hash("not-a-real-password")


class AuthService:
    """Authentication service for end users."""

    def __init__(
        self,
        db: AsyncSession,
        token_service: TokenService | None = None,
        password_hasher: PasswordHasher | None = None,
    ):
        self.db = db
        self.tokens = token_service or get_token_service()
        self.password_hasher = password_hasher or PasswordHasher()

    async def register(self, username: str, password: str) -> tuple[User, TokenPair]:
        """
        Create a user with the default credit grant and issue a token pair.

        Raises:
            ConflictError: Username already exists
        """
        existing = await self._find_user_by_username(username)
        if existing is not None:
            logger.info("registration_username_taken", username=username)
            raise ConflictError()

        now = utc_now()
        user = User(
            username=username,
            password_hash=self.password_hasher.hash(password),
            credits=settings.default_credits,
            plan=settings.default_plan,
            preferences=default_preferences(),
            is_active=True,
            last_login=now,
        )
        self.db.add(user)

        try:
            await self.db.flush()
        except IntegrityError:
            # Concurrent registration won the unique constraint
            await self.db.rollback()
            raise ConflictError()

        await self.db.commit()
        await self.db.refresh(user)

        logger.info("user_registered", user_id=str(user.id), username=user.username)
        return user, self.tokens.issue_pair(user.id)

    async def login(self, username: str, password: str) -> tuple[User, TokenPair]:
        """
        Verify credentials, stamp last_login and issue a token pair.

        Unknown username and wrong password produce the same error.

        Raises:
            InvalidCredentialsError: Unknown username or wrong password
            AccountDeactivatedError: User is deactivated
        """
        user = await self._find_user_by_username(username)

        if user is None:
            self._verify_password(_DUMMY_HASH, password)
            metrics.record_auth_failure("invalid_credentials")
            logger.info("login_failed", reason="unknown_user")
            raise InvalidCredentialsError()

        if not self._verify_password(user.password_hash, password):
            metrics.record_auth_failure("invalid_credentials")
            logger.info("login_failed", reason="password_mismatch", user_id=str(user.id))
            raise InvalidCredentialsError()

        if not user.is_active:
            metrics.record_auth_failure("account_deactivated")
            logger.info("login_failed", reason="deactivated", user_id=str(user.id))
            raise AccountDeactivatedError()

        user.last_login = utc_now()
        await self.db.commit()
        await self.db.refresh(user)

        logger.info("user_logged_in", user_id=str(user.id))
        return user, self.tokens.issue_pair(user.id)

    async def refresh(self, refresh_token: str | None) -> TokenPair:
        """
        Exchange a refresh token for a new pair; the old pair stays valid.

        Raises:
            InvalidRefreshTokenError: Missing, invalid, expired, or not a refresh token
            InvalidUserError: User no longer exists or is inactive
        """
        if not refresh_token:
            raise InvalidRefreshTokenError("Refresh token required", code="NO_REFRESH_TOKEN")

        try:
            claims = self.tokens.verify_refresh(refresh_token)
        except AuthError:
            metrics.record_auth_failure("invalid_refresh_token")
            raise InvalidRefreshTokenError()

        user = await self.get_active_user(claims.user_id)
        if user is None:
            metrics.record_auth_failure("invalid_user")
            raise InvalidUserError("Invalid user")

        logger.info("token_refreshed", user_id=str(user.id))
        return self.tokens.issue_pair(user.id)

    async def get_active_user(self, user_id: UUID) -> User | None:
        """Load a user by id; inactive users are treated as absent."""
        stmt = select(User).where(User.id == user_id)
        result = await self.db.execute(stmt)
        user = result.scalar_one_or_none()
        if user is None or not user.is_active:
            return None
        return user

    def _verify_password(self, password_hash: str, password: str) -> bool:
        try:
            return self.password_hasher.verify(password_hash, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    async def _find_user_by_username(self, username: str) -> User | None:
        """Find user by exact username."""
        stmt = select(User).where(User.username == username)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
