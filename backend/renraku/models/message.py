from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from renraku.database import Base

MESSAGE_TEXT = "text"
MESSAGE_SYSTEM = "system"
MESSAGE_IMAGE = "image"
MESSAGE_FILE = "file"
VALID_MESSAGE_TYPES = (MESSAGE_TEXT, MESSAGE_SYSTEM, MESSAGE_IMAGE, MESSAGE_FILE)


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(String(1000), nullable=False)
    message_type = Column(String(20), nullable=False, default=MESSAGE_TEXT)
    # Position within the room; (created_at, seq) is the total order
    seq = Column(Integer, nullable=False)
    # Server-assigned, never earlier than the room's previous message
    created_at = Column(DateTime(timezone=True), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    room = relationship("Room", back_populates="messages")
    sender = relationship("User")
    read_receipts = relationship("ReadReceipt", back_populates="message", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("room_id", "seq", name="unique_message_seq_per_room"),
        Index("ix_messages_room_order", "room_id", "created_at", "seq"),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
