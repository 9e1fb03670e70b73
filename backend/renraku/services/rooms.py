"""
Room directory: room existence, membership and metadata.

Membership changes and room creation each write a ``system`` message in the
same transaction, so the room's history records who joined and left.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from renraku.config import settings
from renraku.core import errors
from renraku.core.clock import Clock, utcnow
from renraku.core.roles import Role
from renraku.models.message import Message
from renraku.models.room import ROOM_INDIVIDUAL, VALID_ROOM_TYPES, Room
from renraku.models.room_membership import RoomMembership
from renraku.models.user import User
from renraku.schemas.room import LastMessagePreview, RoomDetail, RoomSummary
from renraku.schemas.user import MemberResponse
from renraku.services.access import AccessControl
from renraku.services.messages import MessageStore
from renraku.services.unread import UnreadAccounting

logger = logging.getLogger(__name__)

POLICY_CREATE = "create"
POLICY_REUSE = "reuse"


class RoomDirectory:
    def __init__(
        self,
        db: Session,
        access: AccessControl | None = None,
        messages: MessageStore | None = None,
        unread: UnreadAccounting | None = None,
        fanout=None,
        clock: Clock = utcnow,
        individual_room_policy: str | None = None,
    ) -> None:
        self.db = db
        self.access = access or AccessControl(db)
        self.messages = messages or MessageStore(db, access=self.access, fanout=fanout, clock=clock)
        self.unread = unread or UnreadAccounting(db)
        self.fanout = fanout
        self.clock = clock
        self.individual_room_policy = individual_room_policy or settings.INDIVIDUAL_ROOM_POLICY

    # ── Queries ───────────────────────────────────────────────────────────────

    def list_rooms_for_user(self, user_id: int) -> list[RoomSummary]:
        """Live rooms the user belongs to, most recently active first."""
        rooms = (
            self.db.query(Room)
            .join(RoomMembership, RoomMembership.room_id == Room.id)
            .filter(RoomMembership.user_id == user_id, Room.deleted_at.is_(None))
            .order_by(Room.last_activity_at.desc(), Room.id.desc())
            .all()
        )
        room_ids = [r.id for r in rooms]
        unread = self.unread.counts_for_rooms(user_id, room_ids)
        previews = self._last_messages(room_ids)

        results = []
        for room in rooms:
            summary = RoomSummary.model_validate(room)
            last = previews.get(room.id)
            if last is not None:
                summary.last_message = LastMessagePreview(
                    id=last.id,
                    content=last.content,
                    message_type=last.message_type,
                    sender_id=last.sender_id,
                    created_at=last.created_at,
                )
            summary.unread_count = unread.get(room.id, 0)
            results.append(summary)
        return results

    def get_room(self, room_id: int, user_id: int) -> RoomDetail:
        room = self.access.get_live_room(room_id)
        self.access.require_member(room_id, user_id, allow_admin=True)
        return self.describe(room)

    def describe(self, room: Room) -> RoomDetail:
        detail = RoomDetail.model_validate(room)
        members = (
            self.db.query(User)
            .join(RoomMembership, RoomMembership.user_id == User.id)
            .filter(RoomMembership.room_id == room.id)
            .order_by(RoomMembership.joined_at, User.id)
            .all()
        )
        detail.members = [
            MemberResponse(
                id=u.id,
                display_name=u.display_name,
                role=u.role,
                online=bool(self.fanout and self.fanout.is_online(u.id)),
            )
            for u in members
        ]
        return detail

    def _last_messages(self, room_ids: list[int]) -> dict[int, Message]:
        if not room_ids:
            return {}
        latest = (
            select(Message.room_id, func.max(Message.seq).label("max_seq"))
            .where(Message.room_id.in_(room_ids), Message.deleted_at.is_(None))
            .group_by(Message.room_id)
            .subquery()
        )
        rows = (
            self.db.query(Message)
            .join(latest, (Message.room_id == latest.c.room_id) & (Message.seq == latest.c.max_seq))
            .all()
        )
        return {m.room_id: m for m in rows}

    # ── Commands ──────────────────────────────────────────────────────────────

    def create_room(self, name: str, room_type: str, creator_id: int, member_ids: list[int]) -> Room:
        creator = self.access.require_role(creator_id, Role.TEACHER)
        if room_type not in VALID_ROOM_TYPES:
            raise errors.ValidationError(f"Unknown room type: {room_type}")

        others = _unique([m for m in member_ids if m != creator_id])
        if room_type == ROOM_INDIVIDUAL and len(others) != 1:
            raise errors.InvalidMembership("An individual room needs exactly one member besides the creator")
        members = self._load_users(others)

        if room_type == ROOM_INDIVIDUAL and self.individual_room_policy == POLICY_REUSE:
            existing = self._find_individual_room(creator_id, others[0])
            if existing is not None:
                return existing

        room = Room(name=name.strip(), room_type=room_type, created_by=creator_id, next_seq=1)
        self.db.add(room)
        self.db.flush()
        for user_id in [creator_id, *(u.id for u in members)]:
            self.db.add(RoomMembership(room_id=room.id, user_id=user_id))
        self.db.flush()

        notice = self.messages.append_system(room.id, creator_id, f"{creator.display_name} created the room")
        self.db.commit()
        self.db.refresh(room)

        self.messages.publish(notice)
        logger.info("Room %s (%s) created by user %s with %d members", room.id, room_type, creator_id, len(members) + 1)
        return room

    def update_members(self, room_id: int, action: str, member_ids: list[int], operator_id: int) -> Room:
        operator = self.access.require_role(operator_id, Role.TEACHER)
        room = self.access.get_live_room(room_id)
        if action not in ("add", "remove"):
            raise errors.ValidationError(f"Unknown membership action: {action}")

        current = {
            uid
            for (uid,) in self.db.query(RoomMembership.user_id).filter(RoomMembership.room_id == room_id).all()
        }
        requested = _unique(member_ids)
        notices: list[Message] = []
        removed: list[int] = []

        if action == "add":
            added = self._load_users([uid for uid in requested if uid not in current])
            if added and room.room_type == ROOM_INDIVIDUAL:
                raise errors.InvalidMembership("Individual rooms always have exactly two members")
            for user in added:
                self.db.add(RoomMembership(room_id=room_id, user_id=user.id))
            self.db.flush()
            for user in added:
                notices.append(
                    self.messages.append_system(room_id, operator_id, f"{user.display_name} joined the room")
                )
        else:
            removed = [uid for uid in requested if uid in current]
            if removed and not current - set(removed):
                raise errors.InvalidMembership("A room must keep at least one member")
            if removed and room.room_type == ROOM_INDIVIDUAL:
                raise errors.InvalidMembership("Individual rooms always have exactly two members")
            for uid in removed:
                user = self.db.get(User, uid)
                self.db.query(RoomMembership).filter(
                    RoomMembership.room_id == room_id,
                    RoomMembership.user_id == uid,
                ).delete(synchronize_session=False)
                notices.append(
                    self.messages.append_system(room_id, operator_id, f"{user.display_name} left the room")
                )

        self.db.commit()
        self.db.refresh(room)

        if removed and self.fanout is not None:
            self.fanout.members_removed(room_id, removed)
        for notice in notices:
            self.messages.publish(notice)
        logger.info(
            "Room %s members %s by %s (%s): %d changed",
            room_id,
            "added" if action == "add" else "removed",
            operator.id,
            operator.role,
            len(notices),
        )
        return room

    def delete_room(self, room_id: int, operator_id: int) -> None:
        """Soft-delete a room and flag its messages; nothing is purged."""
        self.access.require_admin(operator_id)
        room = self.access.get_live_room(room_id)

        now = self.clock()
        room.deleted_at = now
        self.db.query(Message).filter(
            Message.room_id == room_id,
            Message.deleted_at.is_(None),
        ).update({Message.deleted_at: now}, synchronize_session=False)
        self.db.commit()

        if self.fanout is not None:
            self.fanout.room_deleted(room_id)
        logger.info("Room %s soft-deleted by %s", room_id, operator_id)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _load_users(self, user_ids: list[int]) -> list[User]:
        if not user_ids:
            return []
        users = self.db.query(User).filter(User.id.in_(user_ids), User.deleted_at.is_(None)).all()
        by_id = {u.id: u for u in users}
        missing = [uid for uid in user_ids if uid not in by_id]
        if missing:
            raise errors.NotFound(f"Users not found: {', '.join(str(m) for m in missing)}")
        return [by_id[uid] for uid in user_ids]

    def _find_individual_room(self, a: int, b: int) -> Room | None:
        pair = (
            select(RoomMembership.room_id)
            .where(RoomMembership.user_id.in_([a, b]))
            .group_by(RoomMembership.room_id)
            .having(func.count(RoomMembership.user_id) == 2)
        )
        return (
            self.db.query(Room)
            .filter(
                Room.id.in_(pair),
                Room.room_type == ROOM_INDIVIDUAL,
                Room.deleted_at.is_(None),
            )
            .order_by(Room.id)
            .first()
        )


def _unique(ids: list[int]) -> list[int]:
    seen: set[int] = set()
    return [i for i in ids if not (i in seen or seen.add(i))]
