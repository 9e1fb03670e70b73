"""
Unread accounting.

Unread = live messages in live rooms, sent by someone else, with no read
receipt for (message, user). Always computed from the message log; there is
no stored counter to drift.
"""

from sqlalchemy import func
from sqlalchemy.orm import Session

from renraku.models.message import Message
from renraku.models.read_receipt import ReadReceipt
from renraku.models.room import Room
from renraku.models.room_membership import RoomMembership


class UnreadAccounting:
    def __init__(self, db: Session) -> None:
        self.db = db

    def unread_count(self, user_id: int, room_id: int | None = None) -> int | dict[int, int]:
        """Count for one room, or ``{room_id: count}`` for every room the user belongs to."""
        if room_id is not None:
            return self.counts_for_rooms(user_id, [room_id]).get(room_id, 0)

        room_ids = [
            rid
            for (rid,) in self.db.query(RoomMembership.room_id)
            .join(Room, Room.id == RoomMembership.room_id)
            .filter(RoomMembership.user_id == user_id, Room.deleted_at.is_(None))
            .all()
        ]
        counts = self.counts_for_rooms(user_id, room_ids)
        return {rid: counts.get(rid, 0) for rid in room_ids}

    def counts_for_rooms(self, user_id: int, room_ids: list[int]) -> dict[int, int]:
        """Return {room_id: unread_count}; rooms with nothing unread are absent."""
        if not room_ids:
            return {}

        rows = (
            self.db.query(
                Message.room_id.label("room_id"),
                func.count(Message.id).label("cnt"),
            )
            .join(Room, Room.id == Message.room_id)
            .outerjoin(
                ReadReceipt,
                (ReadReceipt.message_id == Message.id) & (ReadReceipt.user_id == user_id),
            )
            .filter(
                Message.room_id.in_(room_ids),
                Message.deleted_at.is_(None),
                Room.deleted_at.is_(None),
                Message.sender_id != user_id,
                ReadReceipt.id.is_(None),
            )
            .group_by(Message.room_id)
            .all()
        )
        return {row.room_id: row.cnt for row in rows}
