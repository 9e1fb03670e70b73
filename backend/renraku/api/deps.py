from fastapi import BackgroundTasks, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from renraku.core import errors
from renraku.core.clock import Clock, utcnow
from renraku.core.roles import Role
from renraku.database import get_db
from renraku.models.user import User
from renraku.services.access import AccessControl
from renraku.services.identity import IdentityService, SessionClaims
from renraku.services.messages import MessageStore
from renraku.services.rooms import RoomDirectory
from renraku.services.unread import UnreadAccounting
from renraku.websocket.fanout import FanoutBatch
from renraku.websocket.manager import ConnectionManager, manager

# auto_error=False so a missing header gets the same 401 body as a bad token
security = HTTPBearer(auto_error=False)


def get_clock() -> Clock:
    return utcnow


def get_identity(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> IdentityService:
    return IdentityService(db, clock=clock)


async def get_current_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    identity: IdentityService = Depends(get_identity),
) -> SessionClaims:
    """Every credential problem ends here as a single 401."""
    if credentials is None or not credentials.credentials:
        raise errors.CredentialInvalid("Missing bearer credential")
    return identity.validate_session(credentials.credentials)


async def get_current_user(
    claims: SessionClaims = Depends(get_current_claims),
    identity: IdentityService = Depends(get_identity),
) -> User:
    user = identity.get_user_from_claims(claims)
    if user is None:
        raise errors.CredentialInvalid("User no longer exists")
    return user


def require_staff(current_user: User = Depends(get_current_user)) -> User:
    """Teachers and admins."""
    if not current_user.role_enum.at_least(Role.TEACHER):
        raise errors.Forbidden("Teacher access required")
    return current_user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role_enum is not Role.ADMIN:
        raise errors.Forbidden("Admin access required")
    return current_user


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


def get_manager() -> ConnectionManager:
    return manager


def get_fanout(
    background_tasks: BackgroundTasks,
    registry: ConnectionManager = Depends(get_manager),
) -> FanoutBatch:
    """A per-request batch, delivered after the response has been sent."""
    batch = FanoutBatch(registry)
    background_tasks.add_task(batch.flush)
    return batch


def get_access(db: Session = Depends(get_db)) -> AccessControl:
    return AccessControl(db)


def get_message_store(
    db: Session = Depends(get_db),
    access: AccessControl = Depends(get_access),
    fanout: FanoutBatch = Depends(get_fanout),
    clock: Clock = Depends(get_clock),
) -> MessageStore:
    return MessageStore(db, access=access, fanout=fanout, clock=clock)


def get_unread(db: Session = Depends(get_db)) -> UnreadAccounting:
    return UnreadAccounting(db)


def get_room_directory(
    db: Session = Depends(get_db),
    access: AccessControl = Depends(get_access),
    messages: MessageStore = Depends(get_message_store),
    unread: UnreadAccounting = Depends(get_unread),
    fanout: FanoutBatch = Depends(get_fanout),
    clock: Clock = Depends(get_clock),
) -> RoomDirectory:
    return RoomDirectory(db, access=access, messages=messages, unread=unread, fanout=fanout, clock=clock)
