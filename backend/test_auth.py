"""
backend/test_auth.py

Registration, login and bearer-token enforcement.

Run: pytest backend/test_auth.py -v
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError

from backend.config import ALGORITHM, get_jwt_secret
from backend.db import USERS
from backend.main import app
from backend.security import verify_password

client = TestClient(app)


def register(**overrides):
    body = {"name": "carol", "email": "carol@example.com", "password": "supersecret"}
    body.update(overrides)
    return client.post("/api/auth/register", json=body)


class TestRegister:
    def test_register_creates_user(self, db):
        response = register()

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "User registered"
        assert data["user"]["name"] == "carol"
        assert data["user"]["email"] == "carol@example.com"
        assert data["user"]["role"] == "user"
        assert "password" not in data["user"]

        stored = db[USERS].find_one({"email": "carol@example.com"})
        assert stored["password"] != "supersecret"
        assert verify_password("supersecret", stored["password"])

    def test_register_ignores_role_in_body(self):
        response = register(role="admin")

        assert response.status_code == 201
        assert response.json()["user"]["role"] == "user"

    def test_register_normalizes_email(self):
        response = register(email="  Carol@Example.COM ")

        assert response.status_code == 201
        assert response.json()["user"]["email"] == "carol@example.com"

    def test_missing_fields_return_400(self):
        response = client.post("/api/auth/register", json={"name": "carol"})

        assert response.status_code == 400
        messages = response.json()["detail"]
        assert any(m.startswith("email") for m in messages)
        assert any(m.startswith("password") for m in messages)

    def test_invalid_email_returns_400(self):
        response = register(email="not-an-email")

        assert response.status_code == 400
        assert "email: Invalid email format" in response.json()["detail"]

    def test_short_password_returns_400(self):
        assert register(password="short").status_code == 400

    def test_short_name_returns_400(self):
        assert register(name="ab").status_code == 400

    def test_duplicate_name_returns_409(self):
        assert register().status_code == 201

        response = register(email="other@example.com")
        assert response.status_code == 409
        assert response.json()["detail"] == "User with name carol already exists"

    def test_duplicate_email_returns_409(self):
        assert register().status_code == 201

        response = register(name="carol2", email="CAROL@example.com")
        assert response.status_code == 409
        assert response.json()["detail"] == "User with email carol@example.com already exists"

    def test_index_race_names_the_conflicting_field(self):
        error = DuplicateKeyError("E11000 duplicate key error", 11000, {"keyValue": {"email": "carol@example.com"}})

        with patch("mongomock.collection.Collection.insert_one", side_effect=error):
            response = register()

        assert response.status_code == 409
        assert response.json()["detail"] == "User with email carol@example.com already exists"

    def test_index_race_without_details_is_still_409(self):
        with patch("mongomock.collection.Collection.insert_one", side_effect=DuplicateKeyError("E11000")):
            response = register()

        assert response.status_code == 409
        assert response.json()["detail"] == "User already exists"


class TestLogin:
    def test_login_returns_working_token(self):
        register()

        response = client.post("/api/auth/login", json={"email": "carol@example.com", "password": "supersecret"})
        assert response.status_code == 200
        data = response.json()
        assert data["user"]["name"] == "carol"
        assert "password" not in data["user"]

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.status_code == 200
        assert me.json()["id"] == data["user"]["id"]

    def test_wrong_password_returns_400(self):
        register()

        response = client.post("/api/auth/login", json={"email": "carol@example.com", "password": "wrongpassword"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid email or password"

    def test_unknown_email_returns_400(self):
        response = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "whatever1"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid email or password"

    def test_missing_secret_returns_500(self, monkeypatch):
        register()
        monkeypatch.setattr("backend.config.JWT_SECRET", "")

        response = client.post("/api/auth/login", json={"email": "carol@example.com", "password": "supersecret"})
        assert response.status_code == 500


class TestBearerToken:
    def test_missing_header_returns_401(self):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated: token not provided"

    def test_non_bearer_scheme_returns_401(self):
        response = client.get("/api/auth/me", headers={"Authorization": "Basic abc"})
        assert response.status_code == 401

    def test_garbage_token_returns_401(self):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not.a.jwt"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"

    def test_wrong_signature_returns_401(self, alice):
        token = jwt.encode({"sub": alice["id"]}, "another-secret-key-of-sufficient-length", algorithm=ALGORITHM)

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_expired_token_returns_401(self, alice):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {"sub": alice["id"], "iat": past, "exp": past + timedelta(hours=1)},
            get_jwt_secret(),
            algorithm=ALGORITHM,
        )

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Token expired"

    def test_token_without_subject_returns_401(self):
        token = jwt.encode({"foo": "bar"}, get_jwt_secret(), algorithm=ALGORITHM)

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token payload"

    def test_token_for_deleted_user_returns_401(self, db, alice):
        db[USERS].delete_one({"_id": ObjectId(alice["id"])})

        response = client.get("/api/auth/me", headers=alice["headers"])
        assert response.status_code == 401
        assert response.json()["detail"] == "User not found"


def test_health():
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
