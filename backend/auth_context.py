"""
backend/auth_context.py

Shared authentication context primitives for FastAPI dependency injection.

Contains:
- AuthContext: Immutable identity of the caller, loaded from the database
- require_auth_context: FastAPI dependency for auth enforcement
- verify_token: JWT token verification

This module MUST NOT import backend.main to avoid circular dependencies.
"""

from __future__ import annotations

from typing import Optional

import jwt
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, ConfigDict

from backend import config
from backend.config import IS_DEV
from backend.db import USERS, get_db

# Security scheme for HTTPBearer; missing headers are answered with 401 below
security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------
# JWT Token Verification
# ---------------------------------------------------------
def verify_token(token: str) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        HTTPException(401): If token is expired, invalid, or has no subject
        HTTPException(500): If JWT_SECRET is not configured
    """
    try:
        secret = config.get_jwt_secret()
    except RuntimeError as e:
        print(f"[AUTH] {e}")
        raise HTTPException(status_code=500, detail="Server misconfigured")

    try:
        payload = jwt.decode(token, secret, algorithms=[config.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return payload


# ---------------------------------------------------------
# AuthContext
# ---------------------------------------------------------
class AuthContext(BaseModel):
    """
    Immutable identity of the authenticated caller.
    This is the ONLY source of truth for user_id and role in protected endpoints.
    Never trust owner/user ids from request bodies.

    Fields:
        user_id: User ID (ObjectId hex string) from the user record
        name: User name
        email: User email
        role: "user" or "admin"
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    name: str
    email: str
    role: str

    @property
    def object_id(self) -> ObjectId:
        return ObjectId(self.user_id)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def require_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthContext:
    """
    Auth dependency for FastAPI routes.

    Process:
    1. Require an "Authorization: Bearer <token>" header
    2. Verify JWT token signature and expiration
    3. Fetch user record from database (source of truth for role)
    4. Return AuthContext

    Usage:
        @router.get("/protected")
        def protected_route(ctx: AuthContext = Depends(require_auth_context)):
            ...

    Raises:
        HTTPException(401): If token is missing, invalid, expired, or user not found
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Not authenticated: token not provided")

    payload = verify_token(credentials.credentials)

    try:
        user_oid = ObjectId(payload["sub"])
    except (InvalidId, TypeError):
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = get_db()[USERS].find_one({"_id": user_oid}, {"password": 0})
    if not user:
        print(f"[AUTH] User not found: user_id={payload['sub']}")
        raise HTTPException(status_code=401, detail="User not found")

    ctx = AuthContext(
        user_id=str(user["_id"]),
        name=user["name"],
        email=user["email"],
        role=user.get("role") or "user",
    )

    if IS_DEV:
        print(f"[AUTH] Authenticated: user_id={ctx.user_id}, role={ctx.role}")

    return ctx
