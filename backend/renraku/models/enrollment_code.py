import secrets

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from renraku.database import Base

# Unambiguous uppercase alphabet: codes are read off paper handouts
_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


class EnrollmentCode(Base):
    """A one-time code handed to a guardian to link their LINE account
    to a student. ``used_at`` goes from NULL to a timestamp exactly once."""

    __tablename__ = "enrollment_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(32), unique=True, index=True, nullable=False)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    used_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    student = relationship("Student", back_populates="enrollment_codes")

    @staticmethod
    def generate_code(length: int = 8) -> str:
        return "".join(secrets.choice(_ALPHABET) for _ in range(length))
