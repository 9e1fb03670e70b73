from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from renraku.schemas.user import MemberResponse


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    room_type: Literal["individual", "group"] = "group"
    member_ids: list[int] = []


class RoomMembersUpdate(BaseModel):
    action: Literal["add", "remove"]
    member_ids: list[int] = Field(..., min_length=1)


class LastMessagePreview(BaseModel):
    id: int
    content: str
    message_type: str
    sender_id: int
    created_at: datetime


class RoomResponse(BaseModel):
    id: int
    name: str
    room_type: str
    created_by: int
    last_activity_at: datetime | None = None
    created_at: datetime | None = None
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}


class RoomSummary(RoomResponse):
    last_message: LastMessagePreview | None = None
    unread_count: int = 0


class RoomDetail(RoomResponse):
    members: list[MemberResponse] = []


class UnreadCounts(BaseModel):
    rooms: dict[int, int]
    total: int
