from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from renraku.database import Base


class ReadReceipt(Base):
    """One row per (message, user) once the user has read the message.

    Re-reading refreshes ``read_at``; the unique constraint keeps a second
    row from ever appearing.
    """

    __tablename__ = "read_receipts"

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=False)

    message = relationship("Message", back_populates="read_receipts")
    user = relationship("User")

    __table_args__ = (UniqueConstraint("message_id", "user_id", name="uq_read_receipt_message_user"),)
