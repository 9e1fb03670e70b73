from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from renraku.core.roles import Role
from renraku.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # LINE user id for parents; NULL for staff accounts
    external_id = Column(String(255), unique=True, index=True, nullable=True)
    # Staff login: NULL for parents, who only ever sign in through LINE
    username = Column(String(50), unique=True, index=True, nullable=True)
    hashed_password = Column(String(255), nullable=True)

    display_name = Column(String(100), nullable=False)
    # "parent" | "teacher" | "admin"
    role = Column(String(20), nullable=False, default=Role.PARENT.value)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=True)

    # Users are never hard-deleted; message history keeps pointing at them
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    student = relationship("Student", back_populates="guardians")
    memberships = relationship("RoomMembership", back_populates="user")
    push_subscription = relationship(
        "PushSubscription",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def role_enum(self) -> Role:
        return Role(self.role)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
