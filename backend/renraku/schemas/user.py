from datetime import datetime

from pydantic import BaseModel

from renraku.core.roles import Role


class UserResponse(BaseModel):
    id: int
    display_name: str
    role: Role
    student_id: int | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class UserAdminResponse(UserResponse):
    external_id: str | None = None
    username: str | None = None
    deleted_at: datetime | None = None
    last_login_at: datetime | None = None


class MemberResponse(BaseModel):
    id: int
    display_name: str
    role: Role
    online: bool = False
