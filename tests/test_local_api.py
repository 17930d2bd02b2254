"""
Tests for the local FastAPI surface.
"""
import pytest
from fastapi.testclient import TestClient

from salesync.local_api.app import create_app


@pytest.fixture
def client(context):
    with TestClient(create_app(context)) as test_client:
        yield test_client


def register(client, name="alice", password="secret1"):
    response = client.post("/api/auth/register", json={"username": name, "password": password})
    assert response.status_code == 201
    return response.json()["user"]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "online": True}


class TestAuthRoutes:
    def test_register_and_me(self, client):
        user = register(client)
        assert user["username"] == "alice"
        assert client.get("/api/auth/me").json()["user"] == user

    def test_duplicate_register(self, client):
        register(client)
        client.post("/api/auth/logout")
        response = client.post("/api/auth/register", json={"username": "alice", "password": "secret1"})
        assert response.status_code == 409
        assert response.json()["code"] == "identity_taken"

    def test_validation_error(self, client, remote):
        response = client.post("/api/auth/login", json={"username": "alice", "password": "123"})
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert remote.calls == []

    def test_bad_login(self, client):
        response = client.post("/api/auth/login", json={"username": "ghost", "password": "secret1"})
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_credentials"

    def test_me_requires_session(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json()["code"] == "auth_required"

    def test_logout(self, client, context):
        register(client)
        assert client.post("/api/auth/logout").json() == {"success": True}
        assert not context.session.is_authenticated()


class TestRecordRoutes:
    BODY = {"monthName": "January", "groupedData": [{"group": "A", "total": 3}]}

    def test_put_list_delete(self, client, remote):
        user = register(client)

        put = client.put("/api/records/2024-01", json=self.BODY).json()
        assert put["success"] is True and put["deferred"] is False

        records = client.get("/api/records").json()["data"]
        assert [r["monthId"] for r in records] == ["2024-01"]
        assert records[0]["color"] == "#4A90A4"
        assert records[0]["groupedData"] == [{"group": "A", "total": 3}]

        assert client.delete("/api/records/2024-01").json()["success"] is True
        assert remote.listed(user["id"]) == []

    def test_offline_put_is_deferred(self, client, context):
        register(client)
        context.monitor.set_reachable(False)

        put = client.put("/api/records/2024-01", json=self.BODY).json()
        assert put["deferred"] is True

        status = client.get("/api/status").json()
        assert status["status"] == "offline"
        assert status["pending_count"] == 1
        assert status["online"] is False

    def test_sync_endpoint(self, client, context, remote):
        user = register(client)
        context.engine.stop()
        context.monitor.set_reachable(False)
        client.put("/api/records/2024-01", json=self.BODY)
        context.monitor.set_reachable(True)

        report = client.post("/api/sync").json()
        assert report == {"success": True, "synced": 1, "failed": 0, "skipped": False}
        assert remote.listed(user["id"]) == ["2024-01"]

    def test_records_require_session(self, client):
        assert client.get("/api/records").status_code == 401

    def test_missing_name_is_rejected(self, client):
        register(client)
        assert client.put("/api/records/2024-01", json={"color": "#fff"}).status_code == 422

    def test_offline_without_cache(self, client, context):
        register(client)
        context.monitor.set_reachable(False)
        response = client.get("/api/records")
        assert response.status_code == 503
        assert response.json()["code"] == "offline_no_cache"
