"""Tests for /api/admin endpoints and the bootstrap admin account."""

from fastapi.testclient import TestClient

from renraku.core.roles import Role
from renraku.models.user import User
from renraku.services.bootstrap import ensure_bootstrap_admin
from renraku.tests.conftest import auth_headers, create_room, make_student, make_user


def _admin_headers(db):
    admin = make_user(db, "Principal", Role.ADMIN, username="principal", password="Password1!")
    return admin, auth_headers(db, admin)


class TestStudentsAndCodes:
    def test_register_student_then_enroll_with_issued_code(self, client: TestClient, db):
        _, headers = _admin_headers(db)
        resp = client.post(
            "/api/admin/students",
            json={"student_number": "S-100", "name": "Yui Ito", "grade": "2", "class_name": "A"},
            headers=headers,
        )
        assert resp.status_code == 201
        student_id = resp.json()["id"]

        resp = client.post("/api/admin/enrollment-codes", json={"student_id": student_id}, headers=headers)
        assert resp.status_code == 201
        code = resp.json()["code"]
        assert len(code) == 8
        assert resp.json()["used_at"] is None

        resp = client.post(
            "/api/auth/enroll",
            json={"external_id": "line-ito", "display_name": "Ito Father", "code": code},
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["student_id"] == student_id

    def test_duplicate_student_number(self, client: TestClient, db):
        _, headers = _admin_headers(db)
        make_student(db, student_number="S-100")
        resp = client.post(
            "/api/admin/students",
            json={"student_number": "S-100", "name": "Someone Else"},
            headers=headers,
        )
        assert resp.status_code == 409

    def test_code_for_unknown_student(self, client: TestClient, db):
        _, headers = _admin_headers(db)
        resp = client.post("/api/admin/enrollment-codes", json={"student_id": 999}, headers=headers)
        assert resp.status_code == 404

    def test_codes_are_unique(self, client: TestClient, db):
        _, headers = _admin_headers(db)
        student = make_student(db)
        codes = {
            client.post("/api/admin/enrollment-codes", json={"student_id": student.id}, headers=headers).json()["code"]
            for _ in range(5)
        }
        assert len(codes) == 5


class TestStaff:
    def test_create_teacher_and_login(self, client: TestClient, db):
        _, headers = _admin_headers(db)
        resp = client.post(
            "/api/admin/staff",
            json={"username": "Suzuki.T", "password": "Password1!", "display_name": "Mr. Suzuki"},
            headers=headers,
        )
        assert resp.status_code == 201
        assert resp.json()["username"] == "suzuki.t"
        assert resp.json()["role"] == "teacher"

        login = client.post("/api/auth/staff-login", json={"username": "suzuki.t", "password": "Password1!"})
        assert login.status_code == 200

    def test_duplicate_username(self, client: TestClient, db):
        _, headers = _admin_headers(db)
        body = {"username": "suzuki", "password": "Password1!", "display_name": "Mr. Suzuki"}
        client.post("/api/admin/staff", json=body, headers=headers)
        assert client.post("/api/admin/staff", json=body, headers=headers).status_code == 409

    def test_parent_role_cannot_be_created_here(self, client: TestClient, db):
        _, headers = _admin_headers(db)
        resp = client.post(
            "/api/admin/staff",
            json={"username": "mom", "password": "Password1!", "display_name": "Mom", "role": "parent"},
            headers=headers,
        )
        assert resp.status_code == 422


class TestUsers:
    def test_deactivate_and_restore(self, client: TestClient, db):
        _, headers = _admin_headers(db)
        parent = make_user(db, "Sato Mother")
        parent_headers = auth_headers(db, parent)

        resp = client.put(f"/api/admin/users/{parent.id}/status", json={"active": False}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["deleted_at"] is not None
        assert client.get("/api/auth/me", headers=parent_headers).status_code == 401

        listed = [u["id"] for u in client.get("/api/admin/users", headers=headers).json()]
        assert parent.id not in listed
        listed = [u["id"] for u in client.get("/api/admin/users?include_deleted=true", headers=headers).json()]
        assert parent.id in listed

        resp = client.put(f"/api/admin/users/{parent.id}/status", json={"active": True}, headers=headers)
        assert resp.json()["deleted_at"] is None
        assert client.get("/api/auth/me", headers=parent_headers).status_code == 200

    def test_cannot_deactivate_self(self, client: TestClient, db):
        admin, headers = _admin_headers(db)
        resp = client.put(f"/api/admin/users/{admin.id}/status", json={"active": False}, headers=headers)
        assert resp.status_code == 422

    def test_unknown_user(self, client: TestClient, db):
        _, headers = _admin_headers(db)
        resp = client.put("/api/admin/users/999/status", json={"active": False}, headers=headers)
        assert resp.status_code == 404

    def test_rooms_listing_includes_deleted(self, client: TestClient, db):
        _, headers = _admin_headers(db)
        teacher = make_user(db, "Ms. Tanaka", Role.TEACHER, username="tanaka", password="Password1!")
        parent = make_user(db, "Sato Mother")
        room = create_room(client, auth_headers(db, teacher), [parent.id])
        assert client.delete(f"/api/rooms/{room['id']}", headers=headers).status_code == 200

        rooms = client.get("/api/admin/rooms", headers=headers).json()
        assert [r["id"] for r in rooms] == [room["id"]]
        assert rooms[0]["deleted_at"] is not None


class TestAdminGuard:
    def test_teacher_is_forbidden(self, client: TestClient, db):
        teacher = make_user(db, "Ms. Tanaka", Role.TEACHER, username="tanaka", password="Password1!")
        resp = client.get("/api/admin/users", headers=auth_headers(db, teacher))
        assert resp.status_code == 403
        assert resp.json()["error"] == "Forbidden"

    def test_parent_is_forbidden(self, client: TestClient, db):
        parent = make_user(db, "Sato Mother")
        resp = client.post("/api/admin/students", json={"student_number": "x", "name": "y"}, headers=auth_headers(db, parent))
        assert resp.status_code == 403

    def test_anonymous_is_unauthorized(self, client: TestClient):
        assert client.get("/api/admin/users").status_code == 401


class TestBootstrapAdmin:
    def test_creates_admin_once(self, db):
        user = ensure_bootstrap_admin(db, "Root", "Password1!")
        assert user.username == "root"
        assert user.role == "admin"
        assert ensure_bootstrap_admin(db, "other", "Password1!") is None
        assert db.query(User).filter(User.role == "admin").count() == 1

    def test_noop_without_credentials(self, db):
        assert ensure_bootstrap_admin(db, "", "") is None
        assert db.query(User).count() == 0

    def test_bootstrapped_admin_can_log_in(self, client: TestClient, db):
        ensure_bootstrap_admin(db, "root", "Password1!")
        resp = client.post("/api/auth/staff-login", json={"username": "root", "password": "Password1!"})
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "admin"
