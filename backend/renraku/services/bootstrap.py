import logging

from sqlalchemy.orm import Session

from renraku.config import settings
from renraku.core.roles import Role
from renraku.core.security import get_password_hash
from renraku.models.user import User

logger = logging.getLogger(__name__)


def ensure_bootstrap_admin(db: Session, username: str | None = None, password: str | None = None) -> User | None:
    """
    Create the first admin account from settings.

    Runs at startup. Does nothing unless both username and password are
    configured, or when an admin already exists.
    """
    username = (username if username is not None else settings.BOOTSTRAP_ADMIN_USERNAME).strip().lower()
    password = password if password is not None else settings.BOOTSTRAP_ADMIN_PASSWORD
    if not username or not password:
        return None

    if db.query(User.id).filter(User.role == Role.ADMIN.value).first():
        return None

    user = db.query(User).filter(User.username == username).first()
    if user is None:
        user = User(username=username, display_name=username, role=Role.ADMIN.value)
        db.add(user)
    user.hashed_password = get_password_hash(password)
    user.role = Role.ADMIN.value
    user.deleted_at = None
    db.commit()
    db.refresh(user)
    logger.info("Bootstrap admin %r ready (user %s)", username, user.id)
    return user
