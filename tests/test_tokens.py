"""
Tests for TokenService.

Covers issuing, verifying, token-type separation and expiry.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import jwt
import pytest

from chatapp.exceptions import InvalidTokenError, TokenExpiredError
from chatapp.services.tokens import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    TokenService,
    get_token_service,
)
from tests.conftest import TEST_JWT_SECRET


class TestIssueAndVerify:
    """Round trip through issue and verify."""

    def test_access_token_verifies(self, token_service: TokenService):
        """Access token resolves to the same user with type access."""
        user_id = uuid4()
        claims = token_service.verify_access(token_service.issue_access_token(user_id))

        assert claims.user_id == user_id
        assert claims.token_type == ACCESS_TOKEN_TYPE

    def test_pair_has_distinct_types(self, token_service: TokenService):
        """issue_pair returns one access and one refresh token."""
        user_id = uuid4()
        pair = token_service.issue_pair(user_id)

        assert token_service.verify(pair.access_token).token_type == ACCESS_TOKEN_TYPE
        assert token_service.verify(pair.refresh_token).token_type == REFRESH_TOKEN_TYPE

    def test_access_lifetime_is_seven_days(self, token_service: TokenService):
        """Default access token lifetime is seven days."""
        claims = token_service.verify(token_service.issue_access_token(uuid4()))
        expected = datetime.now(UTC) + timedelta(days=7)

        assert abs(claims.expires_at - expected.timestamp()) < 60

    def test_refresh_lifetime_is_thirty_days(self, token_service: TokenService):
        """Default refresh token lifetime is thirty days."""
        claims = token_service.verify(token_service.issue_refresh_token(uuid4()))
        expected = datetime.now(UTC) + timedelta(days=30)

        assert abs(claims.expires_at - expected.timestamp()) < 60

    def test_missing_type_defaults_to_access(self, token_service: TokenService):
        """Tokens without a type claim are treated as access tokens."""
        user_id = uuid4()
        token = jwt.encode(
            {"sub": str(user_id), "exp": datetime.now(UTC) + timedelta(hours=1)},
            TEST_JWT_SECRET,
            algorithm="HS256",
        )

        assert token_service.verify_access(token).user_id == user_id


class TestTokenTypeSeparation:
    """Access and refresh tokens are not interchangeable."""

    def test_refresh_token_rejected_as_access(self, token_service: TokenService):
        """A refresh token cannot authenticate requests."""
        token = token_service.issue_refresh_token(uuid4())

        with pytest.raises(InvalidTokenError):
            token_service.verify_access(token)

    def test_access_token_rejected_as_refresh(self, token_service: TokenService):
        """An access token cannot be exchanged for a new pair."""
        token = token_service.issue_access_token(uuid4())

        with pytest.raises(InvalidTokenError, match="Invalid refresh token"):
            token_service.verify_refresh(token)


class TestInvalidTokens:
    """Malformed, tampered and expired tokens."""

    def test_expired_token(self):
        """Tokens past exp raise TokenExpiredError."""
        service = TokenService(secret=TEST_JWT_SECRET, access_expire_days=-1)
        token = service.issue_access_token(uuid4())

        with pytest.raises(TokenExpiredError) as exc_info:
            service.verify(token)
        assert exc_info.value.code == "TOKEN_EXPIRED"

    def test_wrong_secret(self, token_service: TokenService):
        """Tokens signed with another secret are invalid."""
        other = TokenService(secret="another-secret-that-is-also-long-enough")
        token = other.issue_access_token(uuid4())

        with pytest.raises(InvalidTokenError) as exc_info:
            token_service.verify(token)
        assert exc_info.value.code == "INVALID_TOKEN"

    def test_garbage(self, token_service: TokenService):
        """Non-JWT strings are invalid."""
        with pytest.raises(InvalidTokenError):
            token_service.verify("not.a.jwt")

    def test_subject_must_be_uuid(self, token_service: TokenService):
        """A non-UUID subject is invalid."""
        token = jwt.encode(
            {"sub": "alice", "exp": datetime.now(UTC) + timedelta(hours=1)},
            TEST_JWT_SECRET,
            algorithm="HS256",
        )

        with pytest.raises(InvalidTokenError):
            token_service.verify(token)

    def test_expiry_required(self, token_service: TokenService):
        """Tokens without exp are invalid."""
        token = jwt.encode({"sub": str(uuid4())}, TEST_JWT_SECRET, algorithm="HS256")

        with pytest.raises(InvalidTokenError):
            token_service.verify(token)


class TestFactory:
    """Settings-driven construction."""

    def test_from_settings(self):
        """from_settings copies secret and lifetimes from configuration."""
        from chatapp.config import settings

        service = TokenService.from_settings()

        assert service.secret == settings.jwt_secret
        assert service.access_expire_days == settings.access_token_expire_days
        assert service.refresh_expire_days == settings.refresh_token_expire_days

    def test_singleton(self):
        """get_token_service returns the same instance."""
        assert get_token_service() is get_token_service()
