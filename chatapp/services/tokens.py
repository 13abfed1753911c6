"""
Token Service - Issues and verifies HS256 access and refresh tokens.

There is no revocation list: a token stays valid until it expires, and a
refresh exchange does not invalidate the previous pair.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
from structlog import get_logger

from chatapp.config import Settings, settings
from chatapp.exceptions import InvalidTokenError, TokenExpiredError
from chatapp.models.domain import TokenClaims, TokenPair

logger = get_logger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenService:
    """Signs and verifies user tokens with the configured secret."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_expire_days: int = 7,
        refresh_expire_days: int = 30,
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.access_expire_days = access_expire_days
        self.refresh_expire_days = refresh_expire_days

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "TokenService":
        """Build a token service from application settings."""
        config = config or settings
        return cls(
            secret=config.jwt_secret,
            algorithm=config.jwt_algorithm,
            access_expire_days=config.access_token_expire_days,
            refresh_expire_days=config.refresh_token_expire_days,
        )

    def issue_access_token(self, user_id: UUID) -> str:
        """Sign an access token for user_id."""
        return self._encode(user_id, ACCESS_TOKEN_TYPE, timedelta(days=self.access_expire_days))

    def issue_refresh_token(self, user_id: UUID) -> str:
        """Sign a refresh token for user_id."""
        return self._encode(user_id, REFRESH_TOKEN_TYPE, timedelta(days=self.refresh_expire_days))

    def issue_pair(self, user_id: UUID) -> TokenPair:
        """Issue an access + refresh token pair."""
        return TokenPair(
            access_token=self.issue_access_token(user_id),
            refresh_token=self.issue_refresh_token(user_id),
        )

    def verify(self, token: str) -> TokenClaims:
        """
        Verify a token signature and expiry.

        Raises:
            TokenExpiredError: Token is past its expiry
            InvalidTokenError: Token is malformed, badly signed, or lacks a user id
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            logger.info("jwt_token_expired")
            raise TokenExpiredError()
        except jwt.InvalidTokenError as e:
            logger.info("jwt_token_invalid", error=str(e))
            raise InvalidTokenError()

        try:
            user_id = UUID(str(payload["sub"]))
        except ValueError:
            logger.info("jwt_token_invalid_subject")
            raise InvalidTokenError()

        return TokenClaims(
            user_id=user_id,
            token_type=str(payload.get("type", ACCESS_TOKEN_TYPE)),
            expires_at=int(payload["exp"]),
        )

    def verify_access(self, token: str) -> TokenClaims:
        """Verify a token and require it to be an access token."""
        claims = self.verify(token)
        if claims.token_type != ACCESS_TOKEN_TYPE:
            raise InvalidTokenError()
        return claims

    def verify_refresh(self, token: str) -> TokenClaims:
        """Verify a token and require it to be a refresh token."""
        claims = self.verify(token)
        if claims.token_type != REFRESH_TOKEN_TYPE:
            raise InvalidTokenError("Invalid refresh token")
        return claims

    def _encode(self, user_id: UUID, token_type: str, lifetime: timedelta) -> str:
        now = datetime.now(UTC)
        payload = {
            "sub": str(user_id),
            "type": token_type,
            "iat": now,
            "exp": now + lifetime,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)


_token_service: TokenService | None = None


def get_token_service() -> TokenService:
    """Get the process-wide token service."""
    global _token_service
    if _token_service is None:
        _token_service = TokenService.from_settings()
    return _token_service
