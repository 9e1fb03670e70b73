"""
Identity & session service: enrollment, staff login, credentials.

No JWT decoding should happen outside this module and ``core.security``.

Enrollment consumes a one-time code with a single conditional UPDATE, so two
guardians racing with the same code can never both win: the row flips from
``used_at IS NULL`` to a timestamp at most once, inside the same transaction
that creates the new user.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from renraku.config import settings
from renraku.core import errors
from renraku.core.clock import Clock, as_utc, utcnow
from renraku.core.roles import Role
from renraku.core.security import CredentialSigner, verify_password
from renraku.models.enrollment_code import EnrollmentCode
from renraku.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionClaims:
    user_id: int
    role: Role
    student_id: int | None
    expires_at: datetime


@dataclass(frozen=True)
class Credential:
    token: str
    expires_at: datetime


class IdentityService:
    def __init__(
        self,
        db: Session,
        signer: CredentialSigner | None = None,
        clock: Clock = utcnow,
        session_ttl: timedelta | None = None,
    ) -> None:
        self.db = db
        self.signer = signer or CredentialSigner()
        self.clock = clock
        self.session_ttl = session_ttl or timedelta(hours=settings.SESSION_EXPIRE_HOURS)

    # ── Enrollment ────────────────────────────────────────────────────────────

    def enroll(self, external_id: str, display_name: str, code: str) -> User:
        """Link an external identity to a student via a one-time code.

        Returns the existing user untouched (code ignored) when this
        external id has enrolled before.
        """
        existing = self._find_by_external_id(external_id)
        if existing is not None:
            if existing.is_deleted:
                raise errors.Forbidden("This account has been deactivated")
            return existing

        code = code.strip().upper()
        now = self.clock()
        if not self._claim_code(code, now):
            self.db.rollback()
            raise self._rejection_for(code, now)

        enrollment = self.db.query(EnrollmentCode).filter(EnrollmentCode.code == code).one()
        user = User(
            external_id=external_id,
            display_name=display_name,
            role=Role.PARENT.value,
            student_id=enrollment.student_id,
        )
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError:
            # Same external id enrolled concurrently; give the code back
            self.db.rollback()
            existing = self._find_by_external_id(external_id)
            if existing is None:
                raise
            return existing

        enrollment.used_by = user.id
        self.db.commit()
        self.db.refresh(user)
        logger.info("Enrolled user %s for student %s", user.id, user.student_id)
        return user

    def _claim_code(self, code: str, now: datetime) -> bool:
        result = self.db.execute(
            update(EnrollmentCode)
            .where(
                EnrollmentCode.code == code,
                EnrollmentCode.used_at.is_(None),
                EnrollmentCode.expires_at > now,
            )
            .values(used_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _rejection_for(self, code: str, now: datetime) -> errors.RenrakuError:
        enrollment = self.db.query(EnrollmentCode).filter(EnrollmentCode.code == code).first()
        if enrollment is None:
            return errors.CodeInvalid("Enrollment code is not recognised")
        if enrollment.used_at is not None:
            return errors.CodeAlreadyUsed("Enrollment code has already been used")
        if as_utc(enrollment.expires_at) <= now:
            return errors.CodeExpired("Enrollment code has expired")
        return errors.CodeInvalid("Enrollment code could not be claimed")

    def _find_by_external_id(self, external_id: str) -> User | None:
        return (
            self.db.query(User)
            .filter(User.external_id == external_id)
            .first()
        )

    # ── Staff login ───────────────────────────────────────────────────────────

    def authenticate_staff(self, username: str, password: str) -> User:
        user = (
            self.db.query(User)
            .filter(User.username == username.lower(), User.deleted_at.is_(None))
            .first()
        )
        if user is None or not user.hashed_password or not verify_password(password, user.hashed_password):
            raise errors.Unauthorized("Invalid credentials")
        return user

    # ── Credentials ───────────────────────────────────────────────────────────

    def issue_session(self, user: User) -> Credential:
        now = self.clock()
        expires_at = now + self.session_ttl
        claims = {
            "sub": str(user.id),
            "role": user.role,
            "student_id": user.student_id,
        }
        token = self.signer.sign(claims, expires_at)
        user.last_login_at = now
        self.db.commit()
        # exp is whole seconds on the wire
        return Credential(token=token, expires_at=expires_at.replace(microsecond=0))

    def validate_session(self, credential: str) -> SessionClaims:
        """Decode a credential. Raises only CredentialInvalid / CredentialExpired."""
        try:
            payload = self.signer.verify(credential)
        except JWTError as exc:
            raise errors.CredentialInvalid("Malformed or tampered credential") from exc

        try:
            user_id = int(payload["sub"])
            role = Role(payload["role"])
            student_id = payload.get("student_id")
            student_id = int(student_id) if student_id is not None else None
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError, OverflowError, OSError) as exc:
            raise errors.CredentialInvalid("Credential is missing required claims") from exc

        if self.clock() > expires_at:
            raise errors.CredentialExpired("Credential has expired")

        return SessionClaims(user_id=user_id, role=role, student_id=student_id, expires_at=expires_at)

    @staticmethod
    def authorize(claims: SessionClaims, minimum_role: Role) -> bool:
        return claims.role.at_least(minimum_role)

    # ── User lookup ───────────────────────────────────────────────────────────

    def get_user_from_claims(self, claims: SessionClaims) -> User | None:
        return (
            self.db.query(User)
            .filter(User.id == claims.user_id, User.deleted_at.is_(None))
            .first()
        )
