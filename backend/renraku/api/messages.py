from fastapi import APIRouter, Depends, Query

from renraku.api.deps import get_current_user, get_message_store, require_admin
from renraku.models.user import User
from renraku.schemas.message import MessageCreate, MessagePage, MessageResponse, ReadReceiptResponse
from renraku.services.messages import MessageStore

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/room/{room_id}", response_model=MessagePage)
async def list_messages(
    room_id: int,
    page: int = Query(default=1, ge=1),
    # Anything above the server maximum is clamped rather than rejected
    limit: int | None = Query(default=None, ge=1),
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
) -> MessagePage:
    """Newest first."""
    result = store.list_by_room(room_id, current_user.id, page=page, limit=limit)
    return MessagePage(
        messages=[MessageResponse.from_message(m) for m in result.items],
        page=result.page,
        limit=result.limit,
        total=result.total,
        has_more=result.has_more,
    )


@router.post("", response_model=MessageResponse, status_code=201)
async def send_message(
    data: MessageCreate,
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
) -> MessageResponse:
    message = store.append(data.room_id, current_user.id, data.content, data.message_type)
    return MessageResponse.from_message(message)


@router.put("/{message_id}/read", response_model=ReadReceiptResponse)
async def mark_read(
    message_id: int,
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
) -> ReadReceiptResponse:
    receipt = store.mark_read(message_id, current_user.id)
    return ReadReceiptResponse.model_validate(receipt)


@router.delete("/{message_id}")
async def delete_message(
    message_id: int,
    current_user: User = Depends(require_admin),
    store: MessageStore = Depends(get_message_store),
) -> dict:
    store.delete_message(message_id, current_user.id)
    return {"success": True}
