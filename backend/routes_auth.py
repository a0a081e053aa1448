"""
backend/routes_auth.py

Registration, login and current-user endpoints.

Security guarantees:
- Registration always creates role "user" (role in the body is ignored)
- Passwords are stored as bcrypt hashes and never returned
- Login failures do not reveal whether the email exists
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pymongo.errors import DuplicateKeyError

from backend.auth_context import AuthContext, require_auth_context
from backend.config import IS_DEV
from backend.db import USERS, doc_to_dict, duplicate_key, get_db, now_utc
from backend.models import User, UserRole
from backend.schemas import LoginRequest, LoginResponse, RegisterRequest, RegisterResponse
from backend.security import create_access_token, hash_password, verify_password


router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)


def user_exists_detail(exc: DuplicateKeyError) -> str:
    """409 message naming the unique field an index race tripped on."""
    key = duplicate_key(exc)
    for field in ("name", "email"):
        if field in key:
            return f"User with {field} {key[field]} already exists"
    return "User already exists"


@router.post("/register", response_model=RegisterResponse, status_code=201)
def register(req: RegisterRequest) -> RegisterResponse:
    """
    Register a new user.

    Raises:
        HTTPException(400): Missing or invalid fields (validation handler)
        HTTPException(409): Name or email already taken
    """
    users = get_db()[USERS]

    if users.find_one({"name": req.name}):
        raise HTTPException(status_code=409, detail=f"User with name {req.name} already exists")

    if users.find_one({"email": req.email}):
        raise HTTPException(status_code=409, detail=f"User with email {req.email} already exists")

    now = now_utc()
    doc = {
        "name": req.name,
        "email": req.email,
        "password": hash_password(req.password),
        "role": UserRole.user.value,
        "image": None,
        "properties": [],
        "vehicles": [],
        "created_at": now,
        "updated_at": now,
    }

    try:
        result = users.insert_one(doc)
    except DuplicateKeyError as e:
        raise HTTPException(status_code=409, detail=user_exists_detail(e))

    doc["_id"] = result.inserted_id
    print(f"[REGISTER] User created: user_id={result.inserted_id}")

    return RegisterResponse(message="User registered", user=User(**doc_to_dict(doc)))


@router.post("/login", response_model=LoginResponse)
def login(req: LoginRequest) -> LoginResponse:
    user = get_db()[USERS].find_one({"email": req.email})

    if not user or not verify_password(req.password, user.get("password", "")):
        if IS_DEV:
            print(f"[LOGIN] Rejected: user_found={bool(user)}")
        raise HTTPException(status_code=400, detail="Invalid email or password")

    try:
        token = create_access_token(str(user["_id"]))
    except RuntimeError as e:
        print(f"[LOGIN] {e}")
        raise HTTPException(status_code=500, detail="Server misconfigured")

    if IS_DEV:
        print(f"[LOGIN] Token issued: user_id={user['_id']}")

    return LoginResponse(token=token, user=User(**doc_to_dict(user)))


@router.get("/me", response_model=User)
def me(ctx: AuthContext = Depends(require_auth_context)) -> User:
    user = get_db()[USERS].find_one({"_id": ctx.object_id}, {"password": 0})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return User(**doc_to_dict(user))
