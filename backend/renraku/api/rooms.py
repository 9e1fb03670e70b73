from fastapi import APIRouter, Depends

from renraku.api.deps import (
    get_current_user,
    get_message_store,
    get_room_directory,
    get_unread,
    require_admin,
    require_staff,
)
from renraku.models.user import User
from renraku.schemas.room import RoomCreate, RoomDetail, RoomMembersUpdate, RoomSummary, UnreadCounts
from renraku.services.messages import MessageStore
from renraku.services.rooms import RoomDirectory
from renraku.services.unread import UnreadAccounting

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.get("", response_model=list[RoomSummary])
async def list_rooms(
    current_user: User = Depends(get_current_user),
    directory: RoomDirectory = Depends(get_room_directory),
) -> list[RoomSummary]:
    """Rooms the current user belongs to, with last message and unread count."""
    return directory.list_rooms_for_user(current_user.id)


# Declared before /{room_id} so "unread" is not parsed as a room id
@router.get("/unread", response_model=UnreadCounts)
async def unread_counts(
    current_user: User = Depends(get_current_user),
    unread: UnreadAccounting = Depends(get_unread),
) -> UnreadCounts:
    rooms = unread.unread_count(current_user.id)
    return UnreadCounts(rooms=rooms, total=sum(rooms.values()))


@router.post("", response_model=RoomDetail, status_code=201)
async def create_room(
    data: RoomCreate,
    current_user: User = Depends(require_staff),
    directory: RoomDirectory = Depends(get_room_directory),
) -> RoomDetail:
    room = directory.create_room(data.name, data.room_type, current_user.id, data.member_ids)
    return directory.describe(room)


@router.get("/{room_id}", response_model=RoomDetail)
async def get_room(
    room_id: int,
    current_user: User = Depends(get_current_user),
    directory: RoomDirectory = Depends(get_room_directory),
) -> RoomDetail:
    return directory.get_room(room_id, current_user.id)


@router.put("/{room_id}/members", response_model=RoomDetail)
async def update_members(
    room_id: int,
    data: RoomMembersUpdate,
    current_user: User = Depends(require_staff),
    directory: RoomDirectory = Depends(get_room_directory),
) -> RoomDetail:
    room = directory.update_members(room_id, data.action, data.member_ids, current_user.id)
    return directory.describe(room)


@router.put("/{room_id}/read")
async def mark_room_read(
    room_id: int,
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
) -> dict:
    marked = store.mark_room_read(room_id, current_user.id)
    return {"room_id": room_id, "marked": marked}


@router.delete("/{room_id}")
async def delete_room(
    room_id: int,
    current_user: User = Depends(require_admin),
    directory: RoomDirectory = Depends(get_room_directory),
) -> dict:
    directory.delete_room(room_id, current_user.id)
    return {"success": True}
