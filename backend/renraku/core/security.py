import calendar
from datetime import datetime

import bcrypt
from jose import jwt

from renraku.config import settings


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode(), hashed_password.encode())


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


class CredentialSigner:
    """Signs and verifies session credentials (JWT).

    Expiry is *not* checked here: ``IdentityService`` compares ``exp``
    against its own clock so that tests can move time.
    """

    def __init__(self, secret_key: str | None = None, algorithm: str | None = None) -> None:
        self.secret_key = secret_key or settings.SECRET_KEY
        self.algorithm = algorithm or settings.ALGORITHM

    def sign(self, claims: dict, expires_at: datetime) -> str:
        to_encode = claims.copy()
        to_encode["exp"] = calendar.timegm(expires_at.utctimetuple())
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> dict:
        """Return the claims. Raises ``jose.JWTError`` on a bad token."""
        return jwt.decode(
            token,
            self.secret_key,
            algorithms=[self.algorithm],
            options={"verify_exp": False},
        )
