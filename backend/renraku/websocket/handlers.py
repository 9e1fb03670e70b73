import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from renraku.config import settings
from renraku.core import errors, events
from renraku.models.user import User
from renraku.schemas.message import MessageResponse
from renraku.services.access import AccessControl
from renraku.services.identity import IdentityService
from renraku.services.messages import MessageStore
from renraku.websocket.dispatch import EventDispatcher
from renraku.websocket.fanout import FanoutBatch
from renraku.websocket.manager import Connection, ConnectionManager, manager

logger = logging.getLogger(__name__)

dispatcher = EventDispatcher()


@dataclass
class SocketContext:
    connection: Connection
    db: Session
    manager: ConnectionManager


def _room_id(data: dict[str, Any]) -> int:
    try:
        return int(data["roomId"])
    except (KeyError, TypeError, ValueError) as exc:
        raise errors.ValidationError("roomId is required") from exc


def _error_frame(exc: errors.RenrakuError, event: str | None = None) -> dict:
    frame = {"type": events.ERROR, **exc.to_dict()}
    if event:
        frame["event"] = event
    return frame


# ------------------------------------------------------------------
# Handshake
# ------------------------------------------------------------------


async def _reject(websocket: WebSocket, exc: errors.RenrakuError) -> None:
    logger.warning("WebSocket authentication rejected: %s", exc.message)
    try:
        await websocket.send_text(json.dumps(_error_frame(exc)))
    finally:
        await websocket.close(code=1008)


async def _authenticate(websocket: WebSocket, identity: IdentityService) -> User | None:
    """Expect the first frame to be {"type": "auth", "token": "<credential>"}."""
    await websocket.accept()  # must accept before receive_text()
    try:
        raw = await asyncio.wait_for(websocket.receive_text(), timeout=settings.WS_AUTH_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        await _reject(websocket, errors.Unauthorized("Authentication timed out"))
        return None
    except WebSocketDisconnect:
        return None

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        data = None
    if not isinstance(data, dict) or data.get("type") != events.AUTH or not data.get("token"):
        await _reject(websocket, errors.Unauthorized("First frame must be an auth frame"))
        return None

    try:
        claims = identity.validate_session(str(data["token"]))
    except errors.Unauthorized as exc:
        await _reject(websocket, exc)
        return None

    user = identity.get_user_from_claims(claims)
    if user is None:
        await _reject(websocket, errors.CredentialInvalid("User no longer exists"))
        return None
    return user


# ------------------------------------------------------------------
# Client events
# ------------------------------------------------------------------


@dispatcher.on(events.JOIN_ROOM)
async def join_room(ctx: SocketContext, data: dict[str, Any]) -> None:
    room_id = _room_id(data)
    access = AccessControl(ctx.db)
    user_id = ctx.connection.user_id
    try:
        access.get_live_room(room_id)
    except errors.NotFound:
        logger.warning("User %s tried to join missing room %s", user_id, room_id)
        return
    if not access.is_member(room_id, user_id):
        logger.warning("User %s tried to join room %s without membership", user_id, room_id)
        return

    ctx.manager.subscribe(ctx.connection.id, room_id)
    await ctx.connection.send({"type": events.ROOM_JOINED, "roomId": room_id})


@dispatcher.on(events.LEAVE_ROOM)
async def leave_room(ctx: SocketContext, data: dict[str, Any]) -> None:
    room_id = _room_id(data)
    ctx.manager.unsubscribe(ctx.connection.id, room_id)
    await ctx.connection.send({"type": events.ROOM_LEFT, "roomId": room_id})


@dispatcher.on(events.SEND_MESSAGE)
async def send_message(ctx: SocketContext, data: dict[str, Any]) -> None:
    room_id = _room_id(data)
    batch = FanoutBatch(ctx.manager)
    store = MessageStore(ctx.db, fanout=batch)
    message = store.append(
        room_id,
        ctx.connection.user_id,
        data.get("content") or "",
        data.get("messageType") or "text",
        origin_connection_id=ctx.connection.id,
    )
    try:
        await ctx.connection.send(
            {"type": events.MESSAGE_SENT, "message": MessageResponse.from_message(message).model_dump(mode="json")}
        )
    finally:
        # The append is committed; peers get it even if the sender is gone
        await batch.flush()


async def _relay_typing(ctx: SocketContext, data: dict[str, Any], event_type: str) -> None:
    room_id = _room_id(data)
    # Only relayed for rooms this connection has joined
    if room_id not in ctx.connection.rooms:
        return
    await ctx.manager.broadcast_to_room(
        room_id,
        {
            "type": event_type,
            "roomId": room_id,
            "userId": ctx.connection.user_id,
            "displayName": ctx.connection.display_name,
        },
        exclude_connection_id=ctx.connection.id,
    )


@dispatcher.on(events.TYPING)
async def typing(ctx: SocketContext, data: dict[str, Any]) -> None:
    await _relay_typing(ctx, data, events.USER_TYPING)


@dispatcher.on(events.STOP_TYPING)
async def stop_typing(ctx: SocketContext, data: dict[str, Any]) -> None:
    await _relay_typing(ctx, data, events.USER_STOP_TYPING)


# ------------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------------


async def realtime_ws_handler(
    websocket: WebSocket,
    db: Session,
    registry: ConnectionManager | None = None,
    identity: IdentityService | None = None,
) -> None:
    """Full lifecycle handler for one realtime connection."""
    registry = registry or manager
    user = await _authenticate(websocket, identity or IdentityService(db))
    if user is None:
        return

    connection = Connection(websocket=websocket, user_id=user.id, display_name=user.display_name)
    registry.register(connection)
    ctx = SocketContext(connection=connection, db=db, manager=registry)

    try:
        await connection.send({"type": events.CONNECT, "connectionId": connection.id, "userId": user.id})
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if not isinstance(data, dict):
                continue

            event_type = data.get("type")
            # Pick up rows committed by other requests since the last frame
            db.expire_all()
            try:
                await dispatcher.dispatch(event_type, ctx, data)
            except errors.RenrakuError as exc:
                await connection.send(_error_frame(exc, event_type))
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Database error handling %r from user %s: %s", event_type, user.id, exc)
                await connection.send(_error_frame(errors.Unavailable("Database unavailable"), event_type))
            except WebSocketDisconnect:
                raise
            except Exception as exc:
                logger.error("Error handling event %r from user %s: %s", event_type, user.id, exc, exc_info=True)

    except WebSocketDisconnect:
        pass
    finally:
        registry.unregister(connection.id)
