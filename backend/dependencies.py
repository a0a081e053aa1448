"""
backend/dependencies.py

Reusable FastAPI dependencies for role and ownership enforcement.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, Path

from backend.auth_context import AuthContext, require_auth_context
from backend.config import IS_DEV
from backend.rbac import is_admin_or_self


def require_role(*roles: str) -> Callable:
    """
    FastAPI dependency factory that only lets the listed roles through.

    Runs after require_auth_context, so an unauthenticated caller gets 401
    before the role is looked at.

    Usage in routes:
        @router.get("", dependencies=[Depends(require_role("admin"))])
        def list_users(...):
            ...

    Raises:
        HTTPException(403): If the caller's role is not in roles
    """
    allowed = set(roles)

    def _check_role(ctx: AuthContext = Depends(require_auth_context)) -> AuthContext:
        if ctx.role not in allowed:
            if IS_DEV:
                print(f"[AUTHZ] Role denied: role={ctx.role}, allowed={sorted(allowed)}")
            raise HTTPException(status_code=403, detail="Access denied: insufficient permissions")
        return ctx

    return _check_role


def require_admin_or_self(
    user_id: str = Path(..., description="Target user ID"),
    ctx: AuthContext = Depends(require_auth_context),
) -> AuthContext:
    """
    Allow the request when the caller is an admin or the user named in the path.

    Raises:
        HTTPException(403): Caller is neither admin nor the target user
    """
    if not is_admin_or_self(ctx, user_id):
        if IS_DEV:
            print(f"[AUTHZ] Admin-or-self denied: caller={ctx.user_id}, target={user_id}")
        raise HTTPException(status_code=403, detail="Access denied: insufficient permissions")
    return ctx
