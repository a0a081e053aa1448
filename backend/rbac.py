"""
backend/rbac.py

Role-Based Access Control (RBAC) predicates for users, properties and vehicles.

Two roles exist: "user" and "admin". Admins bypass ownership checks and may
change other users' roles; nobody else may change a role, and an admin may
not demote themself.

Pure Python logic - no FastAPI imports, no database access.
"""

from typing import Any, Dict, Optional

from backend.auth_context import AuthContext


# ============================================================================
# Role Definitions
# ============================================================================

class Role:
    """Role constants for RBAC."""
    USER = "user"
    ADMIN = "admin"


# ============================================================================
# Ownership Predicates
# ============================================================================

def is_admin_or_self(ctx: AuthContext, user_id: str) -> bool:
    """True if the caller is an admin or is the user identified by user_id."""
    return ctx.role == Role.ADMIN or ctx.user_id == str(user_id)


def can_change_role(ctx: AuthContext, target_id: str, new_role: Optional[str]) -> Optional[str]:
    """
    Validate a role change requested by ctx on the user target_id.

    Args:
        ctx: Caller
        target_id: ID of the user being modified
        new_role: Requested role, or None when the role is not being changed

    Returns:
        An error message, or None if the change is allowed.
    """
    is_admin = ctx.role == Role.ADMIN
    is_self = ctx.user_id == str(target_id)

    if not is_admin and new_role:
        return "You do not have permission to change the user role"

    if is_admin and is_self and new_role == Role.USER:
        return "You cannot change your own role from admin to user"

    return None


def owner_filter(ctx: AuthContext) -> Dict[str, Any]:
    """
    Query fragment restricting owned documents to the caller.
    Admins get an empty filter (they see every owner's documents).
    """
    if ctx.role == Role.ADMIN:
        return {}
    return {"owner": ctx.object_id}
