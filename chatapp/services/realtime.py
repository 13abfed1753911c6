"""
Realtime Hub - In-process registry of websocket connections.

Tracks each socket's user and the conversation rooms it joined. Used for
live echo between sockets in a room and for fan-out of new notifications to
a user's sockets. Nothing sent through the hub is persisted.
"""

from collections import defaultdict
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

from structlog import get_logger

from chatapp.observability import metrics

logger = get_logger(__name__)


class EventSocket(Protocol):
    """The part of a websocket the hub needs."""

    async def send_json(self, data: Any, mode: str = "text") -> None: ...


def build_event(event_type: str, data: dict[str, Any]) -> dict[str, Any]:
    """Wrap a payload in the event envelope sent to clients."""
    return {
        "type": event_type,
        "data": data,
        "timestamp": datetime.now(UTC).isoformat(),
    }


class RealtimeHub:
    """Connection manager for authenticated websockets."""

    def __init__(self) -> None:
        self._user_sockets: dict[UUID, set[EventSocket]] = defaultdict(set)
        self._socket_users: dict[EventSocket, UUID] = {}
        self._rooms: dict[str, set[EventSocket]] = defaultdict(set)
        self._socket_rooms: dict[EventSocket, set[str]] = defaultdict(set)

    def connect(self, user_id: UUID, socket: EventSocket) -> None:
        """Register an accepted socket for a user."""
        self._user_sockets[user_id].add(socket)
        self._socket_users[socket] = user_id
        metrics.realtime_connections.inc()
        logger.info("realtime_connected", user_id=str(user_id))

    def disconnect(self, socket: EventSocket) -> None:
        """Forget a socket and every room it joined."""
        user_id = self._socket_users.pop(socket, None)
        if user_id is None:
            return

        for room in self._socket_rooms.pop(socket, set()):
            members = self._rooms.get(room)
            if members is not None:
                members.discard(socket)
                if not members:
                    del self._rooms[room]

        sockets = self._user_sockets.get(user_id)
        if sockets is not None:
            sockets.discard(socket)
            if not sockets:
                del self._user_sockets[user_id]

        metrics.realtime_connections.dec()
        logger.info("realtime_disconnected", user_id=str(user_id))

    def join(self, socket: EventSocket, conversation_id: str) -> None:
        """Add a socket to a conversation room."""
        self._rooms[conversation_id].add(socket)
        self._socket_rooms[socket].add(conversation_id)

    def leave(self, socket: EventSocket, conversation_id: str) -> None:
        """Remove a socket from a conversation room."""
        members = self._rooms.get(conversation_id)
        if members is not None:
            members.discard(socket)
            if not members:
                del self._rooms[conversation_id]
        self._socket_rooms[socket].discard(conversation_id)

    def room_members(self, conversation_id: str) -> set[EventSocket]:
        """Sockets currently in a room."""
        return set(self._rooms.get(conversation_id, set()))

    def user_connection_count(self, user_id: UUID) -> int:
        """Number of open sockets for a user."""
        return len(self._user_sockets.get(user_id, set()))

    async def broadcast_to_room(
        self,
        conversation_id: str,
        event_type: str,
        data: dict[str, Any],
        exclude: EventSocket | None = None,
    ) -> int:
        """Send an event to every socket in a room except exclude; returns deliveries."""
        targets = [s for s in self.room_members(conversation_id) if s is not exclude]
        return await self._deliver(targets, build_event(event_type, data))

    async def send_to_user(self, user_id: UUID, event_type: str, data: dict[str, Any]) -> int:
        """Send an event to all of a user's sockets; returns deliveries."""
        targets = list(self._user_sockets.get(user_id, set()))
        return await self._deliver(targets, build_event(event_type, data))

    async def _deliver(self, targets: list[EventSocket], event: dict[str, Any]) -> int:
        delivered = 0
        for socket in targets:
            try:
                await socket.send_json(event)
                delivered += 1
            except Exception as e:
                # Peer went away between registry lookup and send
                logger.warning("realtime_send_failed", event_type=event["type"], error=str(e))
                self.disconnect(socket)
        return delivered


# Global hub instance
hub = RealtimeHub()


def get_realtime_hub() -> RealtimeHub:
    """Get the process-wide realtime hub."""
    return hub
