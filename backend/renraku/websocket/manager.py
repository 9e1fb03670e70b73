import json
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field

from fastapi import WebSocket

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    """One authenticated realtime socket."""

    websocket: WebSocket
    user_id: int
    display_name: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    rooms: set[int] = field(default_factory=set)

    async def send(self, payload: dict) -> None:
        await self.websocket.send_text(json.dumps(payload))


class ConnectionManager:
    """Process-local fan-out registry.

    Connections are stored as {connection_id: Connection} and room
    subscriptions as {room_id: {connection_id, ...}}. A connection may
    subscribe to any number of rooms; nothing here is persisted, so after a
    restart or reconnect every client has to join its rooms again.
    """

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        # room_id -> {connection_id}
        self._rooms: dict[int, set[str]] = defaultdict(set)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def register(self, connection: Connection) -> None:
        self._connections[connection.id] = connection
        logger.info("WebSocket connected (user %s, connection %s)", connection.user_id, connection.id)

    def unregister(self, connection_id: str) -> None:
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return
        for room_id in list(connection.rooms):
            self._drop(room_id, connection_id)
        connection.rooms.clear()
        logger.info("WebSocket disconnected (user %s, connection %s)", connection.user_id, connection_id)

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def is_user_online(self, user_id: int) -> bool:
        return any(c.user_id == user_id for c in self._connections.values())

    # ------------------------------------------------------------------
    # Room subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, connection_id: str, room_id: int) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        self._rooms[room_id].add(connection_id)
        connection.rooms.add(room_id)
        return True

    def unsubscribe(self, connection_id: str, room_id: int) -> None:
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.rooms.discard(room_id)
        self._drop(room_id, connection_id)

    def evict_user(self, room_id: int, user_id: int) -> None:
        """Drop every subscription a user holds on a room (membership removed)."""
        for connection_id in list(self._rooms.get(room_id, ())):
            connection = self._connections.get(connection_id)
            if connection is not None and connection.user_id == user_id:
                self.unsubscribe(connection_id, room_id)

    def evict_room(self, room_id: int) -> None:
        for connection_id in list(self._rooms.get(room_id, ())):
            self.unsubscribe(connection_id, room_id)

    def subscribers(self, room_id: int) -> list[Connection]:
        return [self._connections[cid] for cid in self._rooms.get(room_id, ()) if cid in self._connections]

    def _drop(self, room_id: int, connection_id: str) -> None:
        subscribers = self._rooms.get(room_id)
        if subscribers is None:
            return
        subscribers.discard(connection_id)
        if not subscribers:
            del self._rooms[room_id]

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def broadcast_to_room(
        self,
        room_id: int,
        payload: dict,
        exclude_connection_id: str | None = None,
    ) -> int:
        """Send a JSON payload to every connection subscribed to a room.

        At most once per connection, no retries. Returns the number of
        connections the payload was handed to.
        """
        delivered = 0
        dead: list[str] = []
        for connection in self.subscribers(room_id):
            if connection.id == exclude_connection_id:
                continue
            try:
                await connection.send(payload)
                delivered += 1
            except Exception as exc:
                logger.warning("Dropping dead connection %s (user %s): %s", connection.id, connection.user_id, exc)
                dead.append(connection.id)
        for connection_id in dead:
            self.unregister(connection_id)
        return delivered


manager = ConnectionManager()
