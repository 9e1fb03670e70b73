from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from renraku.database import Base

ROOM_INDIVIDUAL = "individual"
ROOM_GROUP = "group"
VALID_ROOM_TYPES = (ROOM_INDIVIDUAL, ROOM_GROUP)


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    # "individual" (exactly two members) | "group"
    room_type = Column(String(20), nullable=False, default=ROOM_GROUP)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    # Bumped by every new message; never moves backwards
    last_activity_at = Column(DateTime(timezone=True), nullable=True, index=True)
    # Sequence handed to the next message; assigned under a row lock
    next_seq = Column(Integer, nullable=False, default=1)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    creator = relationship("User", foreign_keys=[created_by])
    memberships = relationship("RoomMembership", back_populates="room", cascade="all, delete-orphan")
    messages = relationship("Message", back_populates="room")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
