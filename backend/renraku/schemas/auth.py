from datetime import datetime

from pydantic import BaseModel, Field

from renraku.core.roles import Role
from renraku.schemas.user import UserResponse


class EnrollRequest(BaseModel):
    # Verified upstream by the LIFF login; we only see the result
    external_id: str = Field(..., min_length=1, max_length=255)
    display_name: str = Field(..., min_length=1, max_length=100)
    code: str = Field("", max_length=32)


class StaffLoginRequest(BaseModel):
    username: str
    password: str


class SessionResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserResponse


class ClaimsResponse(BaseModel):
    valid: bool = True
    user_id: int
    role: Role
    student_id: int | None = None
    expires_at: datetime
