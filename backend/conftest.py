"""
Shared pytest fixtures for the backend tests.

Every test runs against a fresh in-memory MongoDB (mongomock) injected into
backend.db, so no database server is needed.
"""

import os

# Must be set before backend.config is imported
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-the-backend-suite")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import mongomock
import pytest

from backend import db as db_module
from backend.db import USERS, now_utc
from backend.security import create_access_token, hash_password

DEFAULT_PASSWORD = "password123"


@pytest.fixture(autouse=True)
def db():
    """Fresh in-memory database for each test."""
    db_module.set_client(mongomock.MongoClient(tz_aware=True))
    yield db_module.get_db()
    db_module.set_client(None)


@pytest.fixture
def make_user(db):
    """Factory inserting a user directly and returning its id as a string."""
    def _make_user(name: str, role: str = "user", password: str = DEFAULT_PASSWORD, image=None) -> str:
        now = now_utc()
        result = db[USERS].insert_one({
            "name": name,
            "email": f"{name}@example.com",
            "password": hash_password(password),
            "role": role,
            "image": image,
            "properties": [],
            "vehicles": [],
            "created_at": now,
            "updated_at": now,
        })
        return str(result.inserted_id)

    return _make_user


def bearer(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def auth_headers():
    """Build Authorization headers for any user id."""
    return bearer


@pytest.fixture
def alice(make_user):
    user_id = make_user("alice")
    return {"id": user_id, "headers": bearer(user_id)}


@pytest.fixture
def bob(make_user):
    user_id = make_user("bob")
    return {"id": user_id, "headers": bearer(user_id)}


@pytest.fixture
def admin(make_user):
    user_id = make_user("root", role="admin")
    return {"id": user_id, "headers": bearer(user_id)}
