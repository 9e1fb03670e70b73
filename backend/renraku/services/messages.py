"""
Message store: the per-room append-only log plus read receipts.

Ordering: each room row carries ``next_seq``. An append locks the room row
(``SELECT ... FOR UPDATE``), takes the sequence, and stamps ``created_at``
no earlier than the room's ``last_activity_at``. Appends to one room
therefore serialize while different rooms never contend, and
``(created_at, seq)`` is a total order within a room.

The store returns the committed message first; live delivery is handed to
the fan-out batch and happens afterwards.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from renraku.config import settings
from renraku.core import errors
from renraku.core.clock import Clock, as_utc, utcnow
from renraku.models.message import MESSAGE_FILE, MESSAGE_IMAGE, MESSAGE_SYSTEM, MESSAGE_TEXT, Message
from renraku.models.read_receipt import ReadReceipt
from renraku.models.room import Room
from renraku.services.access import AccessControl

logger = logging.getLogger(__name__)

USER_MESSAGE_TYPES = (MESSAGE_TEXT, MESSAGE_IMAGE, MESSAGE_FILE)


@dataclass
class Page:
    items: list[Message]
    page: int
    limit: int
    total: int

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


class MessageStore:
    def __init__(
        self,
        db: Session,
        access: AccessControl | None = None,
        fanout=None,
        clock: Clock = utcnow,
        max_length: int | None = None,
        page_max: int | None = None,
    ) -> None:
        self.db = db
        self.access = access or AccessControl(db)
        self.fanout = fanout
        self.clock = clock
        self.max_length = max_length or settings.MESSAGE_MAX_LENGTH
        self.page_max = page_max or settings.MESSAGE_PAGE_MAX

    # ── Append ────────────────────────────────────────────────────────────────

    def append(
        self,
        room_id: int,
        sender_id: int,
        content: str,
        message_type: str = MESSAGE_TEXT,
        origin_connection_id: str | None = None,
    ) -> Message:
        self.access.get_live_room(room_id)
        self.access.require_member(room_id, sender_id)

        if not isinstance(message_type, str) or message_type not in USER_MESSAGE_TYPES:
            raise errors.ValidationError(f"Unsupported message type: {message_type}")
        content = self._validate_content(content)

        message = self._insert(room_id, sender_id, content, message_type)
        self.db.commit()
        self.db.refresh(message)

        self.publish(message, origin_connection_id)
        return message

    def append_system(self, room_id: int, sender_id: int, content: str) -> Message:
        """Stage a system notice in the caller's transaction. The caller commits
        and then calls ``publish``."""
        return self._insert(room_id, sender_id, content, MESSAGE_SYSTEM)

    def publish(self, message: Message, origin_connection_id: str | None = None) -> None:
        if self.fanout is None:
            return
        try:
            self.fanout.message_created(message, exclude_connection_id=origin_connection_id)
        except Exception as exc:
            logger.warning("Could not queue fan-out for message %s: %s", message.id, exc)

    def _validate_content(self, content: str) -> str:
        if content is None:
            content = ""
        if not isinstance(content, str):
            raise errors.ValidationError("Message content must be a string")
        content = content.strip()
        if not content:
            raise errors.ValidationError("Message cannot be empty")
        if len(content) > self.max_length:
            raise errors.ValidationError(f"Message exceeds {self.max_length} characters")
        return content

    def _insert(self, room_id: int, sender_id: int, content: str, message_type: str) -> Message:
        room = (
            self.db.query(Room)
            .filter(Room.id == room_id)
            .populate_existing()
            .with_for_update()
            .one()
        )
        now = self.clock()
        last = as_utc(room.last_activity_at)
        created_at = now if last is None or now > last else last

        message = Message(
            room_id=room.id,
            sender_id=sender_id,
            content=content,
            message_type=message_type,
            seq=room.next_seq,
            created_at=created_at,
        )
        room.next_seq = room.next_seq + 1
        room.last_activity_at = created_at
        self.db.add(message)
        self.db.flush()
        return message

    # ── History ───────────────────────────────────────────────────────────────

    def list_by_room(self, room_id: int, user_id: int, page: int = 1, limit: int | None = None) -> Page:
        """Newest first. ``page`` is 1-indexed; ``limit`` is clamped to the server maximum."""
        self.access.get_live_room(room_id)
        self.access.require_member(room_id, user_id, allow_admin=True)

        page = max(int(page), 1)
        limit = settings.MESSAGE_PAGE_DEFAULT if limit is None else int(limit)
        limit = min(max(limit, 1), self.page_max)

        query = self.db.query(Message).filter(
            Message.room_id == room_id,
            Message.deleted_at.is_(None),
        )
        total = query.count()
        items = (
            query.options(joinedload(Message.sender))
            .order_by(Message.created_at.desc(), Message.seq.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return Page(items=items, page=page, limit=limit, total=total)

    def get_live_message(self, message_id: int) -> Message:
        message = (
            self.db.query(Message)
            .join(Room, Room.id == Message.room_id)
            .filter(
                Message.id == message_id,
                Message.deleted_at.is_(None),
                Room.deleted_at.is_(None),
            )
            .first()
        )
        if message is None:
            raise errors.NotFound("Message not found")
        return message

    # ── Read receipts ─────────────────────────────────────────────────────────

    def mark_read(self, message_id: int, user_id: int) -> ReadReceipt:
        message = self.get_live_message(message_id)
        self.access.require_member(message.room_id, user_id)
        return self._upsert_receipt(message.id, user_id)

    def mark_room_read(self, room_id: int, user_id: int) -> int:
        """Mark every live message from other senders in a room as read. Returns how many were new."""
        self.access.get_live_room(room_id)
        self.access.require_member(room_id, user_id)

        unread_ids = [
            mid
            for (mid,) in self.db.query(Message.id)
            .outerjoin(
                ReadReceipt,
                (ReadReceipt.message_id == Message.id) & (ReadReceipt.user_id == user_id),
            )
            .filter(
                Message.room_id == room_id,
                Message.deleted_at.is_(None),
                Message.sender_id != user_id,
                ReadReceipt.id.is_(None),
            )
            .all()
        ]
        for message_id in unread_ids:
            self._upsert_receipt(message_id, user_id)
        return len(unread_ids)

    def _upsert_receipt(self, message_id: int, user_id: int) -> ReadReceipt:
        now = self.clock()
        query = self.db.query(ReadReceipt).filter(
            ReadReceipt.message_id == message_id,
            ReadReceipt.user_id == user_id,
        )
        receipt = query.first()
        if receipt is not None:
            receipt.read_at = now
            self.db.commit()
            self.db.refresh(receipt)
            return receipt

        receipt = ReadReceipt(message_id=message_id, user_id=user_id, read_at=now)
        self.db.add(receipt)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with an identical mark-read; the other row wins, we refresh it
            self.db.rollback()
            receipt = query.one()
            receipt.read_at = now
            self.db.commit()
        self.db.refresh(receipt)
        return receipt

    # ── Moderation ────────────────────────────────────────────────────────────

    def delete_message(self, message_id: int, operator_id: int) -> None:
        self.access.require_admin(operator_id)
        message = self.get_live_message(message_id)
        message.deleted_at = self.clock()
        self.db.commit()
        logger.info("Message %s soft-deleted by %s", message_id, operator_id)
