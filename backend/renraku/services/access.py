"""
Access control: every room and message operation asks here first.

Holds no state of its own: the role hierarchy lives in ``core.roles`` and
membership is read straight from ``room_memberships``.
"""

from sqlalchemy.orm import Session

from renraku.core import errors
from renraku.core.roles import Role
from renraku.models.room import Room
from renraku.models.room_membership import RoomMembership
from renraku.models.user import User


class AccessControl:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()
        if user is None:
            raise errors.NotFound(f"User {user_id} not found")
        return user

    def require_role(self, user_id: int, minimum: Role) -> User:
        user = self.get_user(user_id)
        if not user.role_enum.at_least(minimum):
            raise errors.Forbidden(f"{minimum.value.capitalize()} access required")
        return user

    def require_admin(self, user_id: int) -> User:
        return self.require_role(user_id, Role.ADMIN)

    def get_live_room(self, room_id: int) -> Room:
        room = self.db.query(Room).filter(Room.id == room_id, Room.deleted_at.is_(None)).first()
        if room is None:
            raise errors.NotFound("Room not found")
        return room

    def is_member(self, room_id: int, user_id: int) -> bool:
        return (
            self.db.query(RoomMembership.id)
            .filter(RoomMembership.room_id == room_id, RoomMembership.user_id == user_id)
            .first()
            is not None
        )

    def require_member(self, room_id: int, user_id: int, allow_admin: bool = False) -> User:
        """Return the user if they belong to the room (or are an admin when allowed)."""
        user = self.get_user(user_id)
        if self.is_member(room_id, user_id):
            return user
        if allow_admin and user.role_enum is Role.ADMIN:
            return user
        raise errors.Forbidden("You are not a member of this room")
