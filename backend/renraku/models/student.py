from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from renraku.database import Base


class Student(Base):
    """School-issued student record. Parents are linked to it on enrollment."""

    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    student_number = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    grade = Column(String(20), nullable=True)
    class_name = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    guardians = relationship("User", back_populates="student")
    enrollment_codes = relationship("EnrollmentCode", back_populates="student")
