"""
Tests for FastAPI authentication dependencies.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi.security import HTTPAuthorizationCredentials

from chatapp.api.dependencies import get_current_user, resolve_user
from chatapp.exceptions import (
    AuthenticationFailure,
    InvalidTokenError,
    InvalidUserError,
    NoTokenError,
    TokenExpiredError,
)
from chatapp.services.tokens import TokenService
from tests.conftest import TEST_JWT_SECRET, make_result


class TestResolveUser:
    """Tests for resolve_user."""

    async def test_valid_token(
        self, db_session: AsyncMock, token_service: TokenService, active_user: MagicMock
    ):
        """A valid access token resolves to the active user."""
        db_session.execute = AsyncMock(return_value=make_result(scalar=active_user))
        token = token_service.issue_access_token(active_user.id)

        assert await resolve_user(token, db_session, token_service) is active_user

    async def test_expired_token(self, db_session: AsyncMock):
        """Expired tokens raise TokenExpiredError without touching the database."""
        service = TokenService(secret=TEST_JWT_SECRET, access_expire_days=-1)

        with pytest.raises(TokenExpiredError):
            await resolve_user(service.issue_access_token(uuid4()), db_session, service)

        db_session.execute.assert_not_awaited()

    async def test_refresh_token_rejected(
        self, db_session: AsyncMock, token_service: TokenService
    ):
        """Refresh tokens do not authenticate requests."""
        with pytest.raises(InvalidTokenError):
            await resolve_user(
                token_service.issue_refresh_token(uuid4()), db_session, token_service
            )

    async def test_inactive_user(
        self, db_session: AsyncMock, token_service: TokenService, inactive_user: MagicMock
    ):
        """Tokens of deactivated users are rejected."""
        db_session.execute = AsyncMock(return_value=make_result(scalar=inactive_user))

        with pytest.raises(InvalidUserError) as exc_info:
            await resolve_user(
                token_service.issue_access_token(inactive_user.id), db_session, token_service
            )

        assert exc_info.value.message == "Invalid or inactive user"

    async def test_lookup_failure(self, db_session: AsyncMock, token_service: TokenService):
        """Unexpected lookup errors become a 500 AUTH_ERROR."""
        db_session.execute = AsyncMock(side_effect=RuntimeError("connection reset"))

        with pytest.raises(AuthenticationFailure) as exc_info:
            await resolve_user(token_service.issue_access_token(uuid4()), db_session, token_service)

        assert exc_info.value.status_code == 500
        assert exc_info.value.code == "AUTH_ERROR"


class TestGetCurrentUser:
    """Tests for get_current_user."""

    async def test_no_credentials(self, db_session: AsyncMock, token_service: TokenService):
        """Missing bearer token raises NO_TOKEN."""
        request = MagicMock()

        with pytest.raises(NoTokenError) as exc_info:
            await get_current_user(request, None, db_session, token_service)

        assert exc_info.value.message == "Access token required"

    async def test_attaches_user_to_request(
        self, db_session: AsyncMock, token_service: TokenService, active_user: MagicMock
    ):
        """The resolved user is stored on request.state."""
        db_session.execute = AsyncMock(return_value=make_result(scalar=active_user))
        request = MagicMock()
        request.state = SimpleNamespace()
        credentials = HTTPAuthorizationCredentials(
            scheme="Bearer", credentials=token_service.issue_access_token(active_user.id)
        )

        user = await get_current_user(request, credentials, db_session, token_service)

        assert user is active_user
        assert request.state.user is active_user


class TestBearerOverHttp:
    """Authentication failures as seen by clients."""

    def test_missing_header(self, client):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json() == {"message": "Access token required", "code": "NO_TOKEN"}

    def test_non_bearer_scheme(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Basic abc"})

        assert response.status_code == 401
        assert response.json()["code"] == "NO_TOKEN"

    def test_invalid_token(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer nonsense"})

        assert response.status_code == 401
        assert response.json() == {"message": "Invalid token", "code": "INVALID_TOKEN"}
