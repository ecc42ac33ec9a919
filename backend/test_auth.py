"""Sign-up, sign-in and password hashing."""

import pytest
from fastapi.testclient import TestClient

from modeler.auth.security import hash_password, verify_password
from modeler.config import SESSION_COOKIE_NAME
from modeler.main import app


def test_password_hash_round_trip():
    stored = hash_password("correct-horse-battery")
    assert stored != "correct-horse-battery"
    assert verify_password("correct-horse-battery", stored)
    assert not verify_password("wrong-horse-battery", stored)
    assert hash_password("same") != hash_password("same")


@pytest.mark.parametrize(
    "body",
    [
        {"email": "not-an-email", "password": "long-enough"},
        {"email": "a@example.com", "password": "short"},
    ],
)
def test_sign_up_validation(body):
    assert TestClient(app).post("/api/auth/sign-up", json=body).status_code == 400


def test_duplicate_email_rejected(owner):
    response = TestClient(app).post(
        "/api/auth/sign-up", json={"email": "OWNER@example.com", "password": "another-password"},
    )
    assert response.status_code == 400


def test_sign_in_sets_http_only_cookie(owner):
    client = TestClient(app)
    response = client.post(
        "/api/auth/sign-in", json={"email": "owner@example.com", "password": "correct-horse-battery"},
    )
    assert response.status_code == 200
    cookie = response.headers["set-cookie"]
    assert cookie.startswith(f"{SESSION_COOKIE_NAME}=")
    assert "HttpOnly" in cookie
    assert "samesite=lax" in cookie.lower()
    assert "password_hash" not in response.json()["user"]


def test_wrong_password_is_401(owner):
    response = TestClient(app).post(
        "/api/auth/sign-in", json={"email": "owner@example.com", "password": "wrong-password"},
    )
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid email or password"


def test_me(owner):
    user = owner.get("/api/auth/me").json()["user"]
    assert user["email"] == "owner@example.com"
    assert user["full_name"] == "Olive Owner"
    assert user["is_superuser"] is False
