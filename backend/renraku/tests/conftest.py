"""
Pytest fixtures shared across all test modules.
Uses an in-memory SQLite database with StaticPool so all connections
share a single in-memory DB, so no real Postgres required for tests.
"""

import json
import os

# Set env vars BEFORE any app module is imported
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-min-32-chars-long!!"
os.environ["ALGORITHM"] = "HS256"
os.environ["BOOTSTRAP_ADMIN_USERNAME"] = ""
os.environ["BOOTSTRAP_ADMIN_PASSWORD"] = ""

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

# Import app modules AFTER env vars are set
from renraku.core.roles import Role  # noqa: E402
from renraku.core.security import get_password_hash  # noqa: E402
from renraku.database import Base, get_db  # noqa: E402
from renraku.main import app  # noqa: E402
from renraku.models.enrollment_code import EnrollmentCode  # noqa: E402
from renraku.models.student import Student  # noqa: E402
from renraku.models.user import User  # noqa: E402
from renraku.services.identity import IdentityService  # noqa: E402
from renraku.websocket.manager import manager  # noqa: E402

# Single shared in-memory SQLite engine. StaticPool ensures all
# connections share the same DB instance.
engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

T0 = datetime(2026, 4, 1, 9, 0, tzinfo=timezone.utc)


class FakeWebSocket:
    """Stands in for a starlette WebSocket on the send side."""

    def __init__(self, fail=False):
        self.sent: list[dict] = []
        self.fail = fail

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(text))


class FixedClock:
    """Deterministic clock for service tests. Call it like ``utcnow``."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def setup_db():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_manager():
    """The connection registry is process-global; start every test empty."""
    manager._connections.clear()
    manager._rooms.clear()
    yield
    manager._connections.clear()
    manager._rooms.clear()


@pytest.fixture()
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock():
    return FixedClock()


@pytest.fixture()
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_student(db: Session, student_number="S-001", name="Hana Sato") -> Student:
    student = Student(student_number=student_number, name=name, grade="3", class_name="B")
    db.add(student)
    db.commit()
    db.refresh(student)
    return student


def make_code(db: Session, student: Student, code="ABCD2345", expires_at=None, used_at=None) -> EnrollmentCode:
    enrollment = EnrollmentCode(
        code=code,
        student_id=student.id,
        expires_at=expires_at or datetime.now(timezone.utc) + timedelta(days=3),
        used_at=used_at,
    )
    db.add(enrollment)
    db.commit()
    db.refresh(enrollment)
    return enrollment


def make_user(db: Session, display_name="user", role=Role.PARENT, username=None, password=None, student=None) -> User:
    user = User(
        display_name=display_name,
        role=Role(role).value,
        username=username,
        hashed_password=get_password_hash(password) if password else None,
        external_id=None if username else f"line-{display_name}",
        student_id=student.id if student else None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def token_for(db: Session, user: User) -> str:
    return IdentityService(db).issue_session(user).token


def auth_headers(db: Session, user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(db, user)}"}


def create_room(client: TestClient, headers: dict, member_ids, name="3-B guardians", room_type="group") -> dict:
    resp = client.post(
        "/api/rooms",
        json={"name": name, "room_type": room_type, "member_ids": list(member_ids)},
        headers=headers,
    )
    assert resp.status_code == 201, resp.json()
    return resp.json()


def send(client: TestClient, headers: dict, room_id: int, content: str) -> dict:
    resp = client.post("/api/messages", json={"room_id": room_id, "content": content}, headers=headers)
    assert resp.status_code == 201, resp.json()
    return resp.json()
