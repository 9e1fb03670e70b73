"""
Deferred fan-out.

Services record what happened while a request runs; the batch is delivered
once the request has committed. Over HTTP the batch is flushed as a
background task, so the sender's response never waits on subscribers.
"""

import logging

from renraku.core import events
from renraku.schemas.message import MessageResponse
from renraku.websocket.manager import ConnectionManager

logger = logging.getLogger(__name__)


class FanoutBatch:
    def __init__(self, manager: ConnectionManager) -> None:
        self.manager = manager
        self._pending: list[tuple[int, dict, str | None]] = []

    def message_created(self, message, exclude_connection_id: str | None = None) -> dict:
        payload = {
            "type": events.NEW_MESSAGE,
            "message": MessageResponse.from_message(message).model_dump(mode="json"),
        }
        self._pending.append((message.room_id, payload, exclude_connection_id))
        return payload

    def members_removed(self, room_id: int, user_ids: list[int]) -> None:
        for user_id in user_ids:
            self.manager.evict_user(room_id, user_id)

    def room_deleted(self, room_id: int) -> None:
        self.manager.evict_room(room_id)

    def is_online(self, user_id: int) -> bool:
        return self.manager.is_user_online(user_id)

    async def flush(self) -> None:
        pending, self._pending = self._pending, []
        for room_id, payload, exclude in pending:
            try:
                await self.manager.broadcast_to_room(room_id, payload, exclude_connection_id=exclude)
            except Exception as exc:
                logger.warning("Fan-out to room %s failed: %s", room_id, exc, exc_info=True)
