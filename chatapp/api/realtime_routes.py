"""
Realtime Routes - Authenticated websocket for conversation rooms and notifications.

Client events (JSON text frames, {"type": ..., "conversationId": ...}):
    join-conversation   join a room the user owns
    leave-conversation  leave a room
    send-message        echo {"content"} to the other sockets in the room as new-message
    ping                answered with pong

Nothing received here is persisted; the REST API remains the only write path.
"""

import json
from typing import Any
from uuid import UUID

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from chatapp.api.dependencies import resolve_user
from chatapp.db.models import Conversation
from chatapp.db.session import get_session
from chatapp.exceptions import ChatAppError
from chatapp.services.realtime import RealtimeHub, build_event, get_realtime_hub
from chatapp.services.tokens import get_token_service

logger = get_logger(__name__)
router = APIRouter(tags=["realtime"])

POLICY_VIOLATION = 1008
MAX_FRAME_CONTENT = 10000


async def owns_conversation(db: AsyncSession, user_id: UUID, conversation_id: str) -> bool:
    """Whether conversation_id names an active conversation of user_id."""
    try:
        parsed = UUID(conversation_id)
    except (TypeError, ValueError):
        return False

    stmt = select(Conversation.id).where(
        Conversation.id == parsed,
        Conversation.user_id == user_id,
        Conversation.is_active.is_(True),
    )
    return (await db.execute(stmt)).scalar_one_or_none() is not None


def _error(code: str, message: str) -> dict[str, Any]:
    return build_event("error", {"code": code, "message": message})


@router.websocket("/ws")
async def realtime_ws(websocket: WebSocket, token: str = "") -> None:
    """Verify the access token, then serve room events until the client leaves."""
    if not token:
        await websocket.close(code=POLICY_VIOLATION, reason="Access token required")
        return

    async with get_session() as db:
        try:
            user = await resolve_user(token, db, get_token_service())
        except ChatAppError as e:
            logger.info("realtime_auth_rejected", code=e.code)
            await websocket.close(code=POLICY_VIOLATION, reason=e.message)
            return
        user_id = user.id
        username = user.username

    hub = get_realtime_hub()
    await websocket.accept()
    hub.connect(user_id, websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                await websocket.send_json(_error("INVALID_FRAME", "Frames must be JSON text"))
                continue
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json(_error("INVALID_FRAME", "Frames must be JSON"))
                continue
            if not isinstance(frame, dict):
                await websocket.send_json(_error("INVALID_FRAME", "Frames must be JSON objects"))
                continue

            await handle_frame(hub, websocket, user_id, username, frame)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)


async def handle_frame(
    hub: RealtimeHub,
    websocket: WebSocket,
    user_id: UUID,
    username: str,
    frame: dict[str, Any],
) -> None:
    """Dispatch one client event."""
    event_type = frame.get("type")
    conversation_id = str(frame.get("conversationId") or "")

    if event_type == "ping":
        await websocket.send_json(build_event("pong", {}))

    elif event_type == "join-conversation":
        async with get_session() as db:
            allowed = await owns_conversation(db, user_id, conversation_id)
        if not allowed:
            await websocket.send_json(_error("CONVERSATION_NOT_FOUND", "Conversation not found"))
            return
        hub.join(websocket, conversation_id)
        logger.info("realtime_joined", user_id=str(user_id), conversation_id=conversation_id)
        await websocket.send_json(build_event("joined", {"conversationId": conversation_id}))

    elif event_type == "leave-conversation":
        hub.leave(websocket, conversation_id)
        await websocket.send_json(build_event("left", {"conversationId": conversation_id}))

    elif event_type == "send-message":
        if websocket not in hub.room_members(conversation_id):
            await websocket.send_json(_error("NOT_IN_CONVERSATION", "Join the conversation first"))
            return
        content = frame.get("content")
        if not isinstance(content, str) or not content.strip() or len(content) > MAX_FRAME_CONTENT:
            await websocket.send_json(_error("INVALID_CONTENT", "Message content is invalid"))
            return
        await hub.broadcast_to_room(
            conversation_id,
            "new-message",
            {
                "conversationId": conversation_id,
                "content": content,
                "userId": str(user_id),
                "username": username,
            },
            exclude=websocket,
        )

    else:
        await websocket.send_json(_error("UNKNOWN_EVENT", f"Unknown event type: {event_type}"))
