"""
Realtime client connection policy.

A ``RealtimeClient`` owns one logical realtime session on top of whatever
transport the caller injects. The opener returns an object with async
``send(dict)``, ``receive() -> dict`` and ``close()``; the client performs the
auth handshake over it, waits at most ``connect_timeout`` for the ``connect``
acknowledgment, and retries dropped connections with exponential backoff.

An ``Unauthorized`` answer is terminal: the client stops and stays
disconnected until ``reauthenticate`` is called with a fresh credential.
Rooms the caller joined are remembered and joined again after a reconnect,
since the server keeps no subscriptions across connections.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from renraku.core import errors, events

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class ReconnectPolicy:
    base_delay: float = 1.0
    max_delay: float = 30.0
    max_attempts: int = 5

    def delay(self, attempt: int) -> float:
        """Backoff before the given 1-indexed attempt."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


Opener = Callable[[], Awaitable[Any]]
Listener = Callable[..., Any]


class RealtimeClient:
    def __init__(
        self,
        opener: Opener,
        token: str,
        policy: ReconnectPolicy | None = None,
        connect_timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._opener = opener
        self._token = token
        self.policy = policy or ReconnectPolicy()
        self.connect_timeout = connect_timeout
        self._sleep = sleep

        self.state = ConnectionState.DISCONNECTED
        self.connection_id: str | None = None
        self.user_id: int | None = None
        self.unauthorized = False
        self.rooms: set[int] = set()
        self._transport = None
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    # ── Listeners ─────────────────────────────────────────────────────────────

    def on(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Listener | None = None) -> None:
        if listener is None:
            self._listeners.pop(event, None)
        elif listener in self._listeners.get(event, ()):
            self._listeners[event].remove(listener)

    async def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, ())):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("Listener for %r failed: %s", event, exc, exc_info=True)

    # ── Connection lifecycle ──────────────────────────────────────────────────

    async def connect(self) -> bool:
        if self.connected:
            return True
        if self.unauthorized:
            logger.warning("Not connecting: credential was rejected, re-authentication required")
            return False

        self.state = ConnectionState.CONNECTING
        try:
            await self._open()
        except errors.Unauthorized as exc:
            self._give_up_unauthorized(exc)
            return False
        except (asyncio.TimeoutError, ConnectionError, OSError) as exc:
            logger.warning("Realtime connect failed: %s", exc)
            self.state = ConnectionState.DISCONNECTED
            return False

        self.state = ConnectionState.CONNECTED
        await self._emit(events.CONNECT, self.connection_id)
        return True

    async def reauthenticate(self, token: str) -> bool:
        self._token = token
        self.unauthorized = False
        return await self.connect()

    async def disconnect(self) -> None:
        """Close on request. Remembered rooms are forgotten."""
        self.state = ConnectionState.DISCONNECTED
        self.rooms.clear()
        await self._close_transport()
        await self._emit(events.DISCONNECT, "client disconnect")

    async def connection_lost(self, reason: str = "transport closed") -> bool:
        """Handle a dropped transport and try to come back. Returns True once reconnected."""
        if self.state is ConnectionState.DISCONNECTED:
            return False
        await self._close_transport()
        self.state = ConnectionState.RECONNECTING
        await self._emit(events.DISCONNECT, reason)
        return await self._reconnect()

    async def _reconnect(self) -> bool:
        for attempt in range(1, self.policy.max_attempts + 1):
            await self._emit(events.RECONNECT_ATTEMPT, attempt)
            await self._sleep(self.policy.delay(attempt))
            try:
                await self._open()
            except errors.Unauthorized as exc:
                self._give_up_unauthorized(exc)
                return False
            except (asyncio.TimeoutError, ConnectionError, OSError) as exc:
                logger.info("Reconnect attempt %d/%d failed: %s", attempt, self.policy.max_attempts, exc)
                continue

            self.state = ConnectionState.CONNECTED
            for room_id in sorted(self.rooms):
                await self._transport.send({"type": events.JOIN_ROOM, "roomId": room_id})
            await self._emit(events.RECONNECT, attempt)
            return True

        self.state = ConnectionState.DISCONNECTED
        logger.error("Failed to reconnect after %d attempts", self.policy.max_attempts)
        await self._emit(events.RECONNECT_FAILED)
        return False

    async def _open(self) -> None:
        transport = await self._opener()
        try:
            await transport.send({"type": events.AUTH, "token": self._token})
            frame = await asyncio.wait_for(transport.receive(), timeout=self.connect_timeout)
        except BaseException:
            await transport.close()
            raise

        if frame.get("type") == events.ERROR and frame.get("error") == errors.Unauthorized.kind:
            await transport.close()
            raise errors.Unauthorized(frame.get("detail") or "Credential rejected")
        if frame.get("type") != events.CONNECT:
            await transport.close()
            raise ConnectionError(f"Unexpected handshake frame: {frame.get('type')!r}")

        self._transport = transport
        self.connection_id = frame.get("connectionId")
        self.user_id = frame.get("userId")

    def _give_up_unauthorized(self, exc: errors.Unauthorized) -> None:
        logger.warning("Realtime credential rejected: %s", exc.message)
        self.unauthorized = True
        self.state = ConnectionState.DISCONNECTED

    async def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        self.connection_id = None
        if transport is not None:
            try:
                await transport.close()
            except Exception as exc:
                logger.debug("Ignoring error while closing transport: %s", exc)

    # ── Receiving ─────────────────────────────────────────────────────────────

    async def run(self) -> None:
        """Deliver incoming frames to listeners until the client stops for good."""
        while self.connected:
            try:
                frame = await self._transport.receive()
            except (ConnectionError, OSError) as exc:
                if not await self.connection_lost(str(exc)):
                    return
                continue
            await self._emit(frame.get("type", ""), frame)

    # ── Room operations ───────────────────────────────────────────────────────

    async def join_room(self, room_id: int) -> None:
        self.rooms.add(room_id)
        await self._send({"type": events.JOIN_ROOM, "roomId": room_id})

    async def leave_room(self, room_id: int) -> None:
        self.rooms.discard(room_id)
        await self._send({"type": events.LEAVE_ROOM, "roomId": room_id})

    async def send_message(self, room_id: int, content: str, message_type: str = "text") -> bool:
        return await self._send(
            {"type": events.SEND_MESSAGE, "roomId": room_id, "content": content, "messageType": message_type}
        )

    async def set_typing(self, room_id: int, is_typing: bool) -> bool:
        event = events.TYPING if is_typing else events.STOP_TYPING
        return await self._send({"type": event, "roomId": room_id})

    async def _send(self, frame: dict) -> bool:
        if not self.connected:
            logger.debug("Not connected; dropping %s", frame.get("type"))
            return False
        await self._transport.send(frame)
        return True
