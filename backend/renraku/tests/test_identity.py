"""
Tests for the identity & session service.

Covers:
  - enrollment with a one-time code (success, reuse, expiry, unknown code)
  - a returning guardian signs in without a code
  - a code can be consumed at most once, even by guardians racing for it
  - staff password login
  - credential round trip, expiry boundary and tampering
"""

import threading
from datetime import timedelta

import pytest
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from renraku.core import errors
from renraku.core.roles import Role
from renraku.core.security import CredentialSigner
from renraku.database import Base
from renraku.models.enrollment_code import EnrollmentCode
from renraku.services.identity import IdentityService
from renraku.tests.conftest import T0, make_code, make_student, make_user


@pytest.fixture()
def identity(db, clock):
    return IdentityService(db, clock=clock)


@pytest.fixture()
def student(db):
    return make_student(db)


class TestEnrollment:
    def test_enroll_creates_parent_linked_to_student(self, db, identity, student):
        make_code(db, student, code="ABCD2345")
        user = identity.enroll("line-u1", "Sato Mother", "ABCD2345")

        assert user.id is not None
        assert user.role_enum is Role.PARENT
        assert user.student_id == student.id
        assert user.external_id == "line-u1"

    def test_enroll_marks_code_used_by_new_user(self, db, identity, student):
        make_code(db, student, code="ABCD2345")
        user = identity.enroll("line-u1", "Sato Mother", "ABCD2345")

        code = db.query(EnrollmentCode).filter_by(code="ABCD2345").one()
        assert code.used_at is not None
        assert code.used_by == user.id

    def test_code_is_case_and_whitespace_insensitive(self, db, identity, student):
        make_code(db, student, code="ABCD2345")
        user = identity.enroll("line-u1", "Sato Mother", "  abcd2345 ")
        assert user.student_id == student.id

    def test_second_guardian_with_same_code_is_rejected(self, db, identity, student):
        make_code(db, student, code="ABCD2345")
        identity.enroll("line-u1", "Sato Mother", "ABCD2345")

        with pytest.raises(errors.CodeAlreadyUsed):
            identity.enroll("line-u2", "Sato Father", "ABCD2345")

    def test_returning_user_ignores_code(self, db, identity, student):
        make_code(db, student, code="ABCD2345")
        first = identity.enroll("line-u1", "Sato Mother", "ABCD2345")

        again = identity.enroll("line-u1", "Sato Mother", "")
        assert again.id == first.id

    def test_expired_code(self, db, identity, student):
        make_code(db, student, code="OLDC0DE2", expires_at=T0 - timedelta(minutes=1))
        with pytest.raises(errors.CodeExpired):
            identity.enroll("line-u1", "Sato Mother", "OLDC0DE2")

    def test_unknown_code(self, identity, student):
        with pytest.raises(errors.CodeInvalid):
            identity.enroll("line-u1", "Sato Mother", "NOPE2345")

    def test_failed_enrollment_creates_no_user(self, db, identity, student):
        with pytest.raises(errors.CodeInvalid):
            identity.enroll("line-u1", "Sato Mother", "NOPE2345")
        assert identity._find_by_external_id("line-u1") is None

    def test_deactivated_user_cannot_enroll_again(self, db, identity, student, clock):
        make_code(db, student, code="ABCD2345")
        user = identity.enroll("line-u1", "Sato Mother", "ABCD2345")
        user.deleted_at = clock()
        db.commit()

        with pytest.raises(errors.Forbidden):
            identity.enroll("line-u1", "Sato Mother", "")

    def test_claim_is_a_single_conditional_update(self, db, identity, student, clock):
        make_code(db, student, code="ABCD2345")
        assert identity._claim_code("ABCD2345", clock()) is True
        assert identity._claim_code("ABCD2345", clock()) is False

    def test_concurrent_enrollments_consume_the_code_once(self, tmp_path):
        # Threads need a shared file database; the in-memory one is a single connection
        engine = create_engine(f"sqlite:///{tmp_path / 'enroll.db'}", connect_args={"timeout": 30})
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        setup = Session()
        make_code(setup, make_student(setup), code="ABCD2345")
        setup.close()

        attempts = 8
        barrier = threading.Barrier(attempts)
        outcomes = []
        lock = threading.Lock()

        def attempt(n):
            session = Session()
            try:
                barrier.wait()
                identity = IdentityService(session)
                identity.enroll(f"line-u{n}", f"Guardian {n}", "ABCD2345")
                result = "ok"
            except errors.RenrakuError as exc:
                result = exc.reason
            finally:
                session.close()
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt, args=(n,)) for n in range(attempts)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        engine.dispose()

        assert outcomes.count("ok") == 1
        assert outcomes.count("CodeAlreadyUsed") == attempts - 1


class TestStaffLogin:
    def test_valid_password(self, db, identity):
        teacher = make_user(db, "Ms. Tanaka", Role.TEACHER, username="tanaka", password="Password1!")
        assert identity.authenticate_staff("Tanaka", "Password1!").id == teacher.id

    def test_wrong_password(self, db, identity):
        make_user(db, "Ms. Tanaka", Role.TEACHER, username="tanaka", password="Password1!")
        with pytest.raises(errors.Unauthorized):
            identity.authenticate_staff("tanaka", "nope")

    def test_deactivated_staff_cannot_log_in(self, db, identity, clock):
        teacher = make_user(db, "Ms. Tanaka", Role.TEACHER, username="tanaka", password="Password1!")
        teacher.deleted_at = clock()
        db.commit()
        with pytest.raises(errors.Unauthorized):
            identity.authenticate_staff("tanaka", "Password1!")


class TestSessions:
    def test_round_trip(self, db, identity, student):
        parent = make_user(db, "Sato Mother", Role.PARENT, student=student)
        credential = identity.issue_session(parent)

        claims = identity.validate_session(credential.token)
        assert claims.user_id == parent.id
        assert claims.role is Role.PARENT
        assert claims.student_id == student.id
        assert claims.expires_at == credential.expires_at

    def test_issue_stamps_last_login(self, db, identity, clock):
        parent = make_user(db, "Sato Mother")
        identity.issue_session(parent)
        db.refresh(parent)
        assert parent.last_login_at is not None

    def test_valid_up_to_and_including_expiry(self, db, identity, clock):
        parent = make_user(db, "Sato Mother")
        credential = identity.issue_session(parent)

        clock.now = credential.expires_at
        assert identity.validate_session(credential.token).user_id == parent.id

    def test_expired_strictly_after_expiry(self, db, identity, clock):
        parent = make_user(db, "Sato Mother")
        credential = identity.issue_session(parent)

        clock.now = credential.expires_at + timedelta(seconds=1)
        with pytest.raises(errors.CredentialExpired):
            identity.validate_session(credential.token)

    def test_default_lifetime_is_24_hours(self, db, identity):
        parent = make_user(db, "Sato Mother")
        credential = identity.issue_session(parent)
        assert credential.expires_at == T0 + timedelta(hours=24)

    def test_tampered_token(self, db, identity):
        parent = make_user(db, "Sato Mother")
        token = identity.issue_session(parent).token
        with pytest.raises(errors.CredentialInvalid):
            identity.validate_session(token[:-2] + ("AA" if token[-2:] != "AA" else "BB"))

    def test_wrong_secret(self, db, clock):
        parent = make_user(db, "Sato Mother")
        foreign = IdentityService(db, signer=CredentialSigner(secret_key="another-secret-entirely"), clock=clock)
        token = foreign.issue_session(parent).token
        with pytest.raises(errors.CredentialInvalid):
            IdentityService(db, clock=clock).validate_session(token)

    def test_missing_claims(self, identity, clock):
        signer = CredentialSigner()
        token = signer.sign({"role": "parent"}, clock() + timedelta(hours=1))
        with pytest.raises(errors.CredentialInvalid):
            identity.validate_session(token)

    def test_unknown_role_claim(self, identity, clock):
        token = CredentialSigner().sign({"sub": "1", "role": "principal"}, clock() + timedelta(hours=1))
        with pytest.raises(errors.CredentialInvalid):
            identity.validate_session(token)

    def test_garbage(self, identity):
        with pytest.raises(errors.CredentialInvalid):
            identity.validate_session("not-a-jwt")

    def test_exp_is_whole_seconds(self, db, identity):
        parent = make_user(db, "Sato Mother")
        token = identity.issue_session(parent).token
        payload = jwt.get_unverified_claims(token)
        assert isinstance(payload["exp"], int)

    def test_authorize_uses_hierarchy(self, db, identity):
        teacher = make_user(db, "Ms. Tanaka", Role.TEACHER, username="tanaka", password="Password1!")
        claims = identity.validate_session(identity.issue_session(teacher).token)
        assert IdentityService.authorize(claims, Role.PARENT)
        assert IdentityService.authorize(claims, Role.TEACHER)
        assert not IdentityService.authorize(claims, Role.ADMIN)
