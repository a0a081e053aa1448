"""
backend/routes_users.py

User management endpoints with admin-or-self enforcement.

Security guarantees:
- All endpoints require authentication (require_auth_context)
- Listing users is admin-only
- Read/update/delete of a user requires admin or the user themself
- Role changes go through can_change_role
- Password hashes never leave the database layer
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from backend.auth_context import AuthContext
from backend.config import IS_DEV
from backend.db import PROPERTIES, USERS, VEHICLES, doc_to_dict, get_db, now_utc, parse_object_id
from backend.dependencies import require_admin_or_self, require_role
from backend.media import delete_image, replace_stored_image, upload_image
from backend.models import User
from backend.ownership import search_filter
from backend.routes_auth import user_exists_detail
from backend.rbac import Role, can_change_role
from backend.schemas import UserDeletedResponse, UserUpdateRequest
from backend.security import hash_password


router = APIRouter(
    prefix="/api/users",
    tags=["users"],
)

NO_PASSWORD = {"password": 0}


@router.get("", response_model=List[User], dependencies=[Depends(require_role(Role.ADMIN))])
def list_users(
    q: Optional[str] = Query(None, min_length=1, max_length=200, description="Search query (name/email)"),
    limit: int = Query(50, ge=1, le=200, description="Max results (default 50, max 200)"),
    offset: int = Query(0, ge=0, le=5000, description="Offset for pagination (default 0, max 5000)"),
) -> List[User]:
    """List all users (admin only), newest first."""
    cursor = (
        get_db()[USERS]
        .find(search_filter(q, ("name", "email")), NO_PASSWORD)
        .sort("created_at", -1)
        .skip(offset)
        .limit(limit)
    )
    return [User(**doc_to_dict(doc)) for doc in cursor]


@router.get("/{user_id}", response_model=User)
def get_user(user_id: str, ctx: AuthContext = Depends(require_admin_or_self)) -> User:
    user = get_db()[USERS].find_one({"_id": parse_object_id(user_id)}, NO_PASSWORD)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return User(**doc_to_dict(user))


@router.put("/{user_id}", response_model=User)
def update_user(
    user_id: str,
    req: UserUpdateRequest,
    ctx: AuthContext = Depends(require_admin_or_self),
) -> User:
    """
    Partially update a user.

    Raises:
        HTTPException(400): Empty body or invalid id
        HTTPException(403): Role change not allowed for the caller
        HTTPException(404): User not found
        HTTPException(409): Name or email used by another user
    """
    oid = parse_object_id(user_id)
    updates = req.model_dump(exclude_none=True, mode="json")

    role_error = can_change_role(ctx, user_id, updates.get("role"))
    if role_error:
        raise HTTPException(status_code=403, detail=role_error)

    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    users = get_db()[USERS]

    if "name" in updates and users.find_one({"name": updates["name"], "_id": {"$ne": oid}}):
        raise HTTPException(status_code=409, detail=f"User with name {updates['name']} already exists")

    if "email" in updates and users.find_one({"email": updates["email"], "_id": {"$ne": oid}}):
        raise HTTPException(status_code=409, detail=f"User with email {updates['email']} already exists")

    if "password" in updates:
        updates["password"] = hash_password(updates["password"])

    previous = users.find_one({"_id": oid}, {"image": 1}) if "image" in updates else None

    updates["updated_at"] = now_utc()

    try:
        user = users.find_one_and_update(
            {"_id": oid},
            {"$set": updates},
            projection=NO_PASSWORD,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError as e:
        raise HTTPException(status_code=409, detail=user_exists_detail(e))

    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if previous:
        replace_stored_image(previous.get("image"), updates["image"])

    if IS_DEV:
        changed = sorted(k for k in updates if k != "updated_at")
        print(f"[USERS] Updated user_id={user_id} by={ctx.user_id}, fields={changed}")

    return User(**doc_to_dict(user))


@router.delete("/{user_id}", response_model=UserDeletedResponse)
def delete_user(user_id: str, ctx: AuthContext = Depends(require_admin_or_self)) -> UserDeletedResponse:
    """
    Delete a user together with the properties and vehicles they own.
    Images of all removed documents are deleted from storage.
    """
    oid = parse_object_id(user_id)
    db = get_db()

    user = db[USERS].find_one_and_delete({"_id": oid}, projection=NO_PASSWORD)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    removed = {}
    for collection in (PROPERTIES, VEHICLES):
        for doc in db[collection].find({"owner": oid}, {"image": 1}):
            delete_image(doc.get("image"))
        removed[collection] = db[collection].delete_many({"owner": oid}).deleted_count

    delete_image(user.get("image"))

    print(
        f"[USERS] Deleted user_id={user_id} by={ctx.user_id}, "
        f"properties={removed[PROPERTIES]}, vehicles={removed[VEHICLES]}"
    )

    return UserDeletedResponse(message="User deleted", user_deleted=User(**doc_to_dict(user)))


@router.put("/{user_id}/image", response_model=User)
def upload_user_image(
    user_id: str,
    image: UploadFile = File(..., description="Image file (jpg, jpeg, png, gif, webp)"),
    ctx: AuthContext = Depends(require_admin_or_self),
) -> User:
    """Replace the user's image; the previous one is removed from storage."""
    oid = parse_object_id(user_id)
    users = get_db()[USERS]

    existing = users.find_one({"_id": oid}, {"image": 1})
    if not existing:
        raise HTTPException(status_code=404, detail="User not found")

    url = upload_image(image)
    user = users.find_one_and_update(
        {"_id": oid},
        {"$set": {"image": url, "updated_at": now_utc()}},
        projection=NO_PASSWORD,
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        delete_image(url)
        raise HTTPException(status_code=404, detail="User not found")

    replace_stored_image(existing.get("image"), url)

    return User(**doc_to_dict(user))
