from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class StudentCreate(BaseModel):
    student_number: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    grade: str | None = Field(None, max_length=20)
    class_name: str | None = Field(None, max_length=50)


class StudentResponse(StudentCreate):
    id: int

    model_config = {"from_attributes": True}


class EnrollmentCodeCreate(BaseModel):
    student_id: int
    expires_in_hours: int | None = Field(None, ge=1, le=24 * 90)


class EnrollmentCodeResponse(BaseModel):
    code: str
    student_id: int
    expires_at: datetime
    used_at: datetime | None = None

    model_config = {"from_attributes": True}


class StaffCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=8)
    display_name: str = Field(..., min_length=1, max_length=100)
    role: Literal["teacher", "admin"] = "teacher"

    @field_validator("username")
    @classmethod
    def username_alphanumeric(cls, v: str) -> str:
        if not v.replace("_", "").replace(".", "").isalnum():
            raise ValueError("Username must be alphanumeric with optional underscores or dots")
        return v.lower()


class UserStatusUpdate(BaseModel):
    active: bool
