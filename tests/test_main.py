from fastapi import HTTPException
from fastapi.testclient import TestClient

from lawpal.api import dependencies
from lawpal.main import app


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] in ("connected", "disconnected")
    assert data["mongodb"] == data["database"]
    assert "timestamp" in data


def test_health_reports_disconnected_database(client, monkeypatch):
    monkeypatch.setattr("lawpal.main.database._connected", False)

    data = client.get("/health").json()

    assert data["database"] == "disconnected"
    assert data["mongodb"] == "disconnected"


def test_security_headers(client):
    response = client.get("/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "Cache-Control" not in response.headers


def test_auth_responses_are_not_cached(client):
    response = client.post("/auth/signout")
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Signed out successfully"}
    assert response.headers["Cache-Control"].startswith("no-store")


def test_http_errors_use_success_message_shape(client):
    response = client.get("/auth/profile")
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "No token provided"}


def test_malformed_body_is_400(client):
    response = client.post("/auth/signup", json={"name": ["not", "a", "string"], "email": "a@x.com"})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_guarded_routes_return_503_without_database(client, monkeypatch):
    # Use the real guard; the database service is not connected in tests
    del app.dependency_overrides[dependencies.require_database]
    monkeypatch.setattr(dependencies.database, "_connected", False)

    response = client.post("/auth/signup", json={"name": "Alice", "email": "alice@example.com"})

    assert response.status_code == 503
    body = response.json()
    assert body["success"] is False
    assert body["message"].startswith("Database not connected")
    assert body["databaseState"] in ("connecting", "disconnected")


def test_signout_does_not_need_database(client):
    del app.dependency_overrides[dependencies.require_database]
    assert client.post("/auth/signout").status_code == 200


def test_unhandled_errors_are_generic_500(client, auth_service, monkeypatch):
    async def boom(*_args):
        raise RuntimeError("connection reset by peer at 10.0.0.3")

    monkeypatch.setattr(auth_service, "signin", boom)

    response = TestClient(app, raise_server_exceptions=False).post(
        "/auth/signin", json={"email": "a@x.com", "password": "longenough1"}
    )

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error"}
    assert "10.0.0.3" not in response.text


def test_http_exception_headers_are_kept(client):
    response = client.get("/auth/conversations", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_dict_detail_is_merged():
    @app.get("/__test_dict_detail")
    async def raise_dict():
        raise HTTPException(status_code=418, detail={"message": "teapot", "extra": 1})

    try:
        response = TestClient(app).get("/__test_dict_detail")
        assert response.status_code == 418
        assert response.json() == {"success": False, "message": "teapot", "extra": 1}
    finally:
        app.router.routes.pop()
