# tests/test_api.py
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from rental_api.core.security import create_access_token
from rental_api.main import app
from rental_api.middleware.authentication import is_public_path
from rental_api.middleware.logging import level_for

# No context manager: the lifespan (database and scheduler) does not run
client = TestClient(app)


def test_root():
    response = client.get("/")
    assert response.status_code == 200
    assert "X-Request-ID" in response.headers


def test_caller_request_id_is_echoed():
    response = client.get("/", headers={"X-Request-ID": "lb-2f9c1a7e"})
    assert response.headers["X-Request-ID"] == "lb-2f9c1a7e"


def test_malformed_request_id_is_replaced():
    response = client.get("/", headers={"X-Request-ID": "bad id with spaces"})
    assert response.headers["X-Request-ID"] != "bad id with spaces"
    assert len(response.headers["X-Request-ID"]) == 36


@pytest.mark.parametrize("path,status_code,level", [
    ("/api/bookings", 200, "INFO"),
    ("/api/health", 200, "DEBUG"),
    ("/api/bookings", 409, "WARNING"),
    ("/api/health", 503, "ERROR"),
])
def test_request_log_level(path, status_code, level):
    assert level_for(path, status_code) == level


def test_health():
    body = client.get("/api/health").json()
    assert body["ok"] is True
    assert body["env"] == "test"
    assert body["uptime"] >= 0


@pytest.mark.parametrize("path", ["/api/auth/me", "/api/bookings", "/api/bookings/my", "/api/settings"])
def test_protected_paths_need_token(path):
    response = client.get(path)
    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"


def test_invalid_token_rejected():
    response = client.get("/api/bookings", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"


def test_expired_cookie_rejected():
    token = create_access_token({"sub": "65f0c0ffee0000000000abcd"}, expires_delta=timedelta(seconds=-1))
    response = client.get("/api/bookings", headers={"Cookie": f"token={token}"})
    assert response.status_code == 401


def test_logout_clears_cookie():
    response = client.post("/api/auth/logout")
    assert response.status_code == 200
    assert "token=" in response.headers.get("set-cookie", "")


def test_signup_validation_error_shape():
    response = client.post("/api/auth/signup", json={"email": "bad"})
    assert response.status_code == 422
    body = response.json()
    assert body["detail"] == "Validation Error"
    assert body["errors"]


@pytest.mark.parametrize("path,method,expected", [
    ("/api/categories", "GET", True),
    ("/api/categories", "POST", False),
    ("/api/products/public", "GET", True),
    ("/api/products", "GET", False),
    ("/api/stations/nearest", "GET", True),
    ("/api/stations/65f0c0ffee0000000000abcd", "GET", True),
    ("/api/stations/65f0c0ffee0000000000abcd", "PUT", False),
    ("/api/auth/login", "POST", True),
    ("/api/auth/me", "GET", False),
    ("/docs", "GET", True),
    ("/api/health/", "GET", True),
    ("/api/bookings/create", "POST", False),
])
def test_is_public_path(path, method, expected):
    assert is_public_path(path, method) is expected
