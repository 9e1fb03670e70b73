"""Tests for push subscription storage and /health."""

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from renraku.config import settings
from renraku.database import get_db
from renraku.main import app
from renraku.models.push_subscription import PushSubscription
from renraku.tests.conftest import auth_headers, make_user

SUBSCRIPTION = {
    "endpoint": "https://push.example.com/send/abc",
    "keys": {"p256dh": "BPublicKey", "auth": "authsecret"},
}


class TestPushSubscriptions:
    def test_subscribe_stores_one_row(self, client: TestClient, db):
        user = make_user(db, "Sato Mother")
        headers = auth_headers(db, user)

        assert client.post("/api/push/subscribe", json=SUBSCRIPTION, headers=headers).json() == {"status": "subscribed"}
        moved = {**SUBSCRIPTION, "endpoint": "https://push.example.com/send/xyz"}
        client.post("/api/push/subscribe", json=moved, headers=headers)

        rows = db.query(PushSubscription).filter_by(user_id=user.id).all()
        assert len(rows) == 1
        db.refresh(rows[0])
        assert rows[0].endpoint.endswith("/xyz")

    def test_unsubscribe(self, client: TestClient, db):
        user = make_user(db, "Sato Mother")
        headers = auth_headers(db, user)
        client.post("/api/push/subscribe", json=SUBSCRIPTION, headers=headers)

        resp = client.delete("/api/push/unsubscribe", headers=headers)
        assert resp.json() == {"status": "unsubscribed"}
        assert db.query(PushSubscription).count() == 0

    def test_missing_keys_is_422(self, client: TestClient, db):
        headers = auth_headers(db, make_user(db, "Sato Mother"))
        resp = client.post("/api/push/subscribe", json={"endpoint": "https://x"}, headers=headers)
        assert resp.status_code == 422

    def test_requires_auth(self, client: TestClient):
        assert client.post("/api/push/subscribe", json=SUBSCRIPTION).status_code == 401

    def test_vapid_public_key(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "VAPID_PUBLIC_KEY", "BTestKey")
        assert client.get("/api/push/vapid-public-key").json() == {"key": "BTestKey"}


class TestHealth:
    def test_health(self, client: TestClient):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy", "database": "connected", "connections": 0}

    def _broken_db(self):
        class BrokenSession:
            def execute(self, *args, **kwargs):
                raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        def override():
            yield BrokenSession()

        return override

    def test_unhealthy_hides_engine_detail(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "DEBUG", False)
        app.dependency_overrides[get_db] = self._broken_db()
        resp = client.get("/health")
        assert resp.status_code == 503
        assert resp.json() == {"status": "unhealthy", "database": "disconnected"}

    def test_unhealthy_shows_engine_detail_in_debug(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "DEBUG", True)
        app.dependency_overrides[get_db] = self._broken_db()
        resp = client.get("/health")
        assert resp.status_code == 503
        assert "disk I/O error" in resp.json()["error"]
