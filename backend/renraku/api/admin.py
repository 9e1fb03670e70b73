"""
Admin endpoints: accessible only to users with the admin role.

Account and student bookkeeping for the school office: registering students,
issuing enrollment codes, creating staff accounts, and deactivating users.
Nothing here hard-deletes; deactivation sets ``deleted_at`` and is reversible.
"""

from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from renraku.api.deps import get_clock, require_admin
from renraku.config import settings
from renraku.core import errors
from renraku.core.clock import Clock
from renraku.core.security import get_password_hash
from renraku.database import get_db
from renraku.models.enrollment_code import EnrollmentCode
from renraku.models.room import Room
from renraku.models.student import Student
from renraku.models.user import User
from renraku.schemas.admin import (
    EnrollmentCodeCreate,
    EnrollmentCodeResponse,
    StaffCreate,
    StudentCreate,
    StudentResponse,
    UserStatusUpdate,
)
from renraku.schemas.room import RoomResponse
from renraku.schemas.user import UserAdminResponse

router = APIRouter(prefix="/admin", tags=["admin"])


# ── Students & enrollment ─────────────────────────────────────────────────────


@router.post("/students", response_model=StudentResponse, status_code=201)
async def create_student(
    data: StudentCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> StudentResponse:
    if db.query(Student).filter(Student.student_number == data.student_number).first():
        raise errors.Conflict("Student number already registered")
    student = Student(**data.model_dump())
    db.add(student)
    db.commit()
    db.refresh(student)
    return StudentResponse.model_validate(student)


@router.post("/enrollment-codes", response_model=EnrollmentCodeResponse, status_code=201)
async def issue_enrollment_code(
    data: EnrollmentCodeCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> EnrollmentCodeResponse:
    """Issue a one-time code for a guardian of the given student."""
    if db.get(Student, data.student_id) is None:
        raise errors.NotFound("Student not found")

    code = EnrollmentCode.generate_code()
    while db.query(EnrollmentCode.id).filter(EnrollmentCode.code == code).first():
        code = EnrollmentCode.generate_code()

    hours = data.expires_in_hours or settings.ENROLLMENT_CODE_TTL_HOURS
    enrollment = EnrollmentCode(
        code=code,
        student_id=data.student_id,
        expires_at=clock() + timedelta(hours=hours),
    )
    db.add(enrollment)
    db.commit()
    db.refresh(enrollment)
    return EnrollmentCodeResponse.model_validate(enrollment)


# ── Staff & users ─────────────────────────────────────────────────────────────


@router.post("/staff", response_model=UserAdminResponse, status_code=201)
async def create_staff(
    data: StaffCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserAdminResponse:
    if db.query(User).filter(User.username == data.username).first():
        raise errors.Conflict("Username already registered")
    user = User(
        username=data.username,
        hashed_password=get_password_hash(data.password),
        display_name=data.display_name,
        role=data.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return UserAdminResponse.model_validate(user)


@router.get("/users", response_model=list[UserAdminResponse])
async def list_users(
    include_deleted: bool = Query(default=False),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[UserAdminResponse]:
    query = db.query(User)
    if not include_deleted:
        query = query.filter(User.deleted_at.is_(None))
    return [UserAdminResponse.model_validate(u) for u in query.order_by(User.id).all()]


@router.put("/users/{user_id}/status", response_model=UserAdminResponse)
async def set_user_status(
    user_id: int,
    data: UserStatusUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> UserAdminResponse:
    """Deactivate (soft-delete) or restore an account. Deactivated users cannot sign in."""
    user = db.get(User, user_id)
    if user is None:
        raise errors.NotFound("User not found")
    if user.id == admin.id and not data.active:
        raise errors.ValidationError("Cannot deactivate yourself")

    user.deleted_at = None if data.active else clock()
    db.commit()
    db.refresh(user)
    return UserAdminResponse.model_validate(user)


# ── Rooms ─────────────────────────────────────────────────────────────────────


@router.get("/rooms", response_model=list[RoomResponse])
async def list_all_rooms(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[RoomResponse]:
    """Every room on the deployment, soft-deleted ones included."""
    rooms = db.query(Room).order_by(Room.id).all()
    return [RoomResponse.model_validate(r) for r in rooms]
