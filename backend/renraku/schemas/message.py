from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from renraku.core.roles import Role


class MessageCreate(BaseModel):
    room_id: int
    # Length and emptiness are checked by the message store, not here, so
    # the HTTP and socket paths report the same error.
    content: str
    message_type: Literal["text", "image", "file"] = "text"


class MessageResponse(BaseModel):
    id: int
    room_id: int
    sender_id: int
    sender_name: str
    sender_role: Role
    content: str
    message_type: str
    seq: int
    created_at: datetime

    @classmethod
    def from_message(cls, message) -> "MessageResponse":
        return cls(
            id=message.id,
            room_id=message.room_id,
            sender_id=message.sender_id,
            sender_name=message.sender.display_name,
            sender_role=message.sender.role,
            content=message.content,
            message_type=message.message_type,
            seq=message.seq,
            created_at=message.created_at,
        )


class MessagePage(BaseModel):
    messages: list[MessageResponse]
    page: int
    limit: int
    total: int
    has_more: bool


class ReadReceiptResponse(BaseModel):
    message_id: int
    user_id: int
    read_at: datetime

    model_config = {"from_attributes": True}
