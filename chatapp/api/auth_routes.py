"""
Auth Routes - Registration, login, token refresh and current user.
"""

from fastapi import APIRouter, Depends, status

from chatapp.api.dependencies import get_auth_service, get_current_user
from chatapp.db.models import User
from chatapp.models.api import (
    AuthResponse,
    Credentials,
    LoginRequest,
    ErrorResponse,
    RefreshRequest,
    TokenRefreshResponse,
    UserEnvelope,
    UserResponse,
)
from chatapp.services.auth import AuthService

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)


def user_to_response(user: User) -> UserResponse:
    """Public view of a user; the password hash never leaves the service layer."""
    return UserResponse(
        id=user.id,
        username=user.username,
        credits=user.credits,
        plan=user.plan,
        preferences=user.preferences or {},
        last_login=user.last_login,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    request: Credentials,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """
    Register a user with the default credit grant.

    Returns 409 USER_EXISTS if the username is taken.
    """
    user, tokens = await service.register(request.username, request.password)
    return AuthResponse(
        message="User registered successfully",
        user=user_to_response(user),
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """
    Log in with username and password.

    Returns 401 INVALID_CREDENTIALS or ACCOUNT_DEACTIVATED.
    """
    user, tokens = await service.login(request.username, request.password)
    return AuthResponse(
        message="Login successful",
        user=user_to_response(user),
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


@router.post("/refresh", response_model=TokenRefreshResponse)
async def refresh(
    request: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
) -> TokenRefreshResponse:
    """Exchange a refresh token for a new token pair."""
    tokens = await service.refresh(request.refresh_token)
    return TokenRefreshResponse(
        message="Token refreshed successfully",
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


@router.get("/me", response_model=UserEnvelope)
async def me(user: User = Depends(get_current_user)) -> UserEnvelope:
    """Get the authenticated user."""
    return UserEnvelope(user=user_to_response(user))
