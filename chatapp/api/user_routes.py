"""
User Routes - Profile, statistics and notifications of the authenticated user.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from chatapp.api.auth_routes import user_to_response
from chatapp.api.dependencies import (
    get_current_user,
    get_notification_service,
    get_user_service,
)
from chatapp.db.models import User
from chatapp.models.api import (
    ErrorResponse,
    MessageOnlyResponse,
    NotificationListResponse,
    NotificationPagination,
    NotificationResponse,
    ProfileUpdateRequest,
    ProfileUpdateResponse,
    UserEnvelope,
    UserStatsResponse,
)
from chatapp.services.notifications import NotificationService, to_notification_item
from chatapp.services.users import UserService

router = APIRouter(
    prefix="/api/user",
    tags=["user"],
    responses={401: {"model": ErrorResponse}},
)


@router.get("/profile", response_model=UserEnvelope)
async def get_profile(user: User = Depends(get_current_user)) -> UserEnvelope:
    """Get the authenticated user's profile."""
    return UserEnvelope(user=user_to_response(user))


@router.put("/profile", response_model=ProfileUpdateResponse)
async def update_profile(
    request: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
) -> ProfileUpdateResponse:
    """
    Change username and/or merge preferences.

    Returns 409 USERNAME_TAKEN when another user owns the name.
    """
    preferences = None
    if request.preferences is not None:
        preferences = request.preferences.model_dump(exclude_none=True)

    updated = await service.update_profile(user, request.username, preferences)
    return ProfileUpdateResponse(
        message="Profile updated successfully",
        user=user_to_response(updated),
    )


@router.get("/stats", response_model=UserStatsResponse)
async def get_stats(
    user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
) -> UserStatsResponse:
    """Conversation, message and unread-notification counts plus balance."""
    return UserStatsResponse(stats=await service.get_stats(user))


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False, alias="unreadOnly"),
    user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationListResponse:
    """List notifications newest first."""
    result = await service.list_notifications(user.id, page, limit, unread_only)
    return NotificationListResponse(
        notifications=[to_notification_item(n) for n in result.items],
        pagination=NotificationPagination(
            page=page,
            limit=limit,
            total=result.total,
            unread_count=result.unread_count,
        ),
    )


@router.put("/notifications/read-all", response_model=MessageOnlyResponse)
async def mark_all_notifications_read(
    user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> MessageOnlyResponse:
    """Mark every notification read."""
    await service.mark_all_read(user.id)
    return MessageOnlyResponse(message="All notifications marked as read")


@router.put("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationResponse:
    """Mark one notification read."""
    notification = await service.mark_read(user.id, notification_id)
    return NotificationResponse(
        message="Notification marked as read",
        notification=to_notification_item(notification),
    )


@router.delete("/notifications/{notification_id}", response_model=MessageOnlyResponse)
async def delete_notification(
    notification_id: UUID,
    user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> MessageOnlyResponse:
    """Delete one notification."""
    await service.delete_notification(user.id, notification_id)
    return MessageOnlyResponse(message="Notification deleted successfully")
