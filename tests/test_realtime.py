"""
Tests for the realtime hub and the websocket event handler.
"""

import json
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from chatapp.api import realtime_routes
from chatapp.api.realtime_routes import handle_frame, owns_conversation
from chatapp.services.realtime import RealtimeHub, build_event
from chatapp.services.tokens import get_token_service
from tests.conftest import make_result, mock_socket


def session_yielding(session):
    """Stand-in for get_session() that yields the given mock session."""

    @asynccontextmanager
    async def _get_session():
        yield session

    return _get_session


# ============================================================================
# Hub
# ============================================================================


class TestRealtimeHub:
    """Connection registry and fan-out."""

    def test_build_event_envelope(self):
        event = build_event("pong", {})

        assert event["type"] == "pong"
        assert event["data"] == {}
        assert "timestamp" in event

    async def test_send_to_user_reaches_all_sockets(self, hub: RealtimeHub):
        user_id = uuid4()
        first, second = mock_socket(), mock_socket()
        hub.connect(user_id, first)
        hub.connect(user_id, second)

        delivered = await hub.send_to_user(user_id, "notification", {"title": "Hi"})

        assert delivered == 2
        assert hub.user_connection_count(user_id) == 2
        first.send_json.assert_awaited_once()

    async def test_broadcast_excludes_sender(self, hub: RealtimeHub):
        sender, receiver = mock_socket(), mock_socket()
        hub.connect(uuid4(), sender)
        hub.connect(uuid4(), receiver)
        hub.join(sender, "room-1")
        hub.join(receiver, "room-1")

        delivered = await hub.broadcast_to_room(
            "room-1", "new-message", {"content": "x"}, exclude=sender
        )

        assert delivered == 1
        sender.send_json.assert_not_awaited()
        assert receiver.send_json.await_args.args[0]["type"] == "new-message"

    async def test_failed_socket_is_dropped(self, hub: RealtimeHub):
        user_id = uuid4()
        healthy, broken = mock_socket(), mock_socket()
        broken.send_json = AsyncMock(side_effect=RuntimeError("closed"))
        hub.connect(user_id, healthy)
        hub.connect(user_id, broken)

        delivered = await hub.send_to_user(user_id, "notification", {})

        assert delivered == 1
        assert hub.user_connection_count(user_id) == 1

    def test_disconnect_leaves_rooms(self, hub: RealtimeHub):
        user_id = uuid4()
        socket = mock_socket()
        hub.connect(user_id, socket)
        hub.join(socket, "room-1")
        hub.join(socket, "room-2")

        hub.disconnect(socket)

        assert hub.room_members("room-1") == set()
        assert hub.room_members("room-2") == set()
        assert hub.user_connection_count(user_id) == 0

    def test_disconnect_unknown_socket_is_noop(self, hub: RealtimeHub):
        hub.disconnect(mock_socket())

    def test_leave(self, hub: RealtimeHub):
        socket = mock_socket()
        hub.connect(uuid4(), socket)
        hub.join(socket, "room-1")

        hub.leave(socket, "room-1")

        assert socket not in hub.room_members("room-1")


# ============================================================================
# Event Handler
# ============================================================================


class TestHandleFrame:
    """Client event dispatch."""

    @pytest.fixture
    def user_id(self):
        return uuid4()

    @pytest.fixture
    def websocket(self, hub: RealtimeHub, user_id):
        socket = mock_socket()
        hub.connect(user_id, socket)
        return socket

    def last_event(self, websocket) -> dict:
        return websocket.send_json.await_args.args[0]

    async def test_ping(self, hub, websocket, user_id):
        await handle_frame(hub, websocket, user_id, "alice", {"type": "ping"})

        assert self.last_event(websocket)["type"] == "pong"

    async def test_unknown_event(self, hub, websocket, user_id):
        await handle_frame(hub, websocket, user_id, "alice", {"type": "dance"})

        event = self.last_event(websocket)
        assert event["type"] == "error"
        assert event["data"]["code"] == "UNKNOWN_EVENT"

    async def test_join_owned_conversation(self, hub, websocket, user_id, db_session):
        conversation_id = str(uuid4())
        with (
            patch.object(realtime_routes, "get_session", session_yielding(db_session)),
            patch.object(realtime_routes, "owns_conversation", AsyncMock(return_value=True)),
        ):
            await handle_frame(
                hub,
                websocket,
                user_id,
                "alice",
                {"type": "join-conversation", "conversationId": conversation_id},
            )

        assert websocket in hub.room_members(conversation_id)
        assert self.last_event(websocket)["type"] == "joined"

    async def test_join_foreign_conversation(self, hub, websocket, user_id, db_session):
        conversation_id = str(uuid4())
        with (
            patch.object(realtime_routes, "get_session", session_yielding(db_session)),
            patch.object(realtime_routes, "owns_conversation", AsyncMock(return_value=False)),
        ):
            await handle_frame(
                hub,
                websocket,
                user_id,
                "alice",
                {"type": "join-conversation", "conversationId": conversation_id},
            )

        assert hub.room_members(conversation_id) == set()
        assert self.last_event(websocket)["data"]["code"] == "CONVERSATION_NOT_FOUND"

    async def test_send_requires_membership(self, hub, websocket, user_id):
        await handle_frame(
            hub,
            websocket,
            user_id,
            "alice",
            {"type": "send-message", "conversationId": "room-1", "content": "hey"},
        )

        assert self.last_event(websocket)["data"]["code"] == "NOT_IN_CONVERSATION"

    async def test_send_echoes_to_other_members(self, hub, websocket, user_id):
        peer = mock_socket()
        hub.connect(user_id, peer)
        hub.join(websocket, "room-1")
        hub.join(peer, "room-1")

        await handle_frame(
            hub,
            websocket,
            user_id,
            "alice",
            {"type": "send-message", "conversationId": "room-1", "content": "hey"},
        )

        websocket.send_json.assert_not_awaited()
        event = peer.send_json.await_args.args[0]
        assert event["type"] == "new-message"
        assert event["data"] == {
            "conversationId": "room-1",
            "content": "hey",
            "userId": str(user_id),
            "username": "alice",
        }

    @pytest.mark.parametrize("content", [None, "", "   ", 42, "x" * 10001])
    async def test_send_rejects_invalid_content(self, hub, websocket, user_id, content):
        hub.join(websocket, "room-1")

        await handle_frame(
            hub,
            websocket,
            user_id,
            "alice",
            {"type": "send-message", "conversationId": "room-1", "content": content},
        )

        assert self.last_event(websocket)["data"]["code"] == "INVALID_CONTENT"

    async def test_leave(self, hub, websocket, user_id):
        hub.join(websocket, "room-1")

        await handle_frame(
            hub,
            websocket,
            user_id,
            "alice",
            {"type": "leave-conversation", "conversationId": "room-1"},
        )

        assert hub.room_members("room-1") == set()
        assert self.last_event(websocket)["type"] == "left"


class TestOwnsConversation:
    """Room ownership check."""

    async def test_invalid_id(self, db_session):
        assert await owns_conversation(db_session, uuid4(), "not-a-uuid") is False
        db_session.execute.assert_not_awaited()

    async def test_owned(self, db_session):
        db_session.execute = AsyncMock(return_value=make_result(scalar=uuid4()))

        assert await owns_conversation(db_session, uuid4(), str(uuid4())) is True


# ============================================================================
# Websocket Endpoint
# ============================================================================


class TestWebsocketEndpoint:
    """Handshake and frame loop over the test client."""

    def test_missing_token_rejected(self, client: TestClient):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws"):
                pass

        assert exc_info.value.code == 1008

    def test_invalid_token_rejected(self, client: TestClient, db_session):
        with patch.object(realtime_routes, "get_session", session_yielding(db_session)):
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with client.websocket_connect("/ws?token=garbage"):
                    pass

        assert exc_info.value.code == 1008

    def test_ping_pong(self, client: TestClient, db_session, active_user: MagicMock):
        db_session.execute = AsyncMock(return_value=make_result(scalar=active_user))
        token = get_token_service().issue_access_token(active_user.id)

        with patch.object(realtime_routes, "get_session", session_yielding(db_session)):
            with client.websocket_connect(f"/ws?token={token}") as ws:
                ws.send_text(json.dumps({"type": "ping"}))
                assert ws.receive_json()["type"] == "pong"

                ws.send_text("not json")
                assert ws.receive_json()["data"]["code"] == "INVALID_FRAME"

                ws.send_text(json.dumps(["a", "list"]))
                assert ws.receive_json()["data"]["code"] == "INVALID_FRAME"

    def test_binary_frame_rejected_and_connection_kept(
        self, client: TestClient, db_session, active_user: MagicMock
    ):
        db_session.execute = AsyncMock(return_value=make_result(scalar=active_user))
        token = get_token_service().issue_access_token(active_user.id)

        with patch.object(realtime_routes, "get_session", session_yielding(db_session)):
            with client.websocket_connect(f"/ws?token={token}") as ws:
                ws.send_bytes(b"\x00\x01")
                error = ws.receive_json()
                assert error["type"] == "error"
                assert error["data"]["code"] == "INVALID_FRAME"

                ws.send_text(json.dumps({"type": "ping"}))
                assert ws.receive_json()["type"] == "pong"
