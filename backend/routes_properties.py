"""
backend/routes_properties.py

Property CRUD endpoints with owner-scoped queries.

Security guarantees:
- All endpoints require authentication (require_auth_context)
- Non-admins only ever see and modify their own properties
- Admins bypass ownership (optionally filtering the list by owner)
- owner comes from the auth context ONLY, never from the request body
- Cross-owner access returns 404 (not 403) to avoid leaking existence
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from backend.auth_context import AuthContext, require_auth_context
from backend.config import IS_DEV
from backend.db import PROPERTIES, doc_to_dict, duplicate_key, get_db, now_utc, parse_object_id
from backend.media import delete_image, replace_stored_image, upload_image
from backend.models import Property
from backend.ownership import (
    assert_docs_owned,
    exact_ci,
    find_owned_or_404,
    link_to_owner,
    scoped_query,
    search_filter,
    unlink_from_owner,
)
from backend.rbac import owner_filter
from backend.schemas import PropertyCreateRequest, PropertyDeletedResponse, PropertyUpdateRequest


router = APIRouter(
    prefix="/api/properties",
    tags=["properties"],
)

NOT_FOUND = "Property not found or access denied"


def check_duplicates(
    properties: Collection,
    owner: ObjectId,
    fields: Dict[str, Any],
    exclude_id: Optional[ObjectId] = None,
) -> None:
    """
    Enforce per-owner uniqueness of name and address (case-insensitive).

    Raises:
        HTTPException(409): Another property of the same owner already uses the value
    """
    for field in ("name", "address"):
        value = fields.get(field)
        if value is None:
            continue
        query: Dict[str, Any] = {"owner": owner, field: exact_ci(value)}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        if properties.find_one(query):
            raise HTTPException(status_code=409, detail=f"Property with {field} '{value}' already exists")


def property_exists_detail(exc: DuplicateKeyError) -> str:
    key = duplicate_key(exc)
    for field in ("name", "address"):
        if field in key:
            return f"Property with {field} '{key[field]}' already exists"
    return "Property already exists"


@router.get("", response_model=List[Property])
def list_properties(
    q: Optional[str] = Query(None, min_length=1, max_length=200, description="Search query (name/address)"),
    owner: Optional[str] = Query(None, description="Owner user ID (admin only)"),
    limit: int = Query(50, ge=1, le=200, description="Max results (default 50, max 200)"),
    offset: int = Query(0, ge=0, le=5000, description="Offset for pagination (default 0, max 5000)"),
    ctx: AuthContext = Depends(require_auth_context),
) -> List[Property]:
    """
    List properties visible to the caller, newest first.

    Non-admins get their own properties; the owner parameter is ignored for them.
    """
    query = owner_filter(ctx)
    if ctx.is_admin and owner:
        query["owner"] = parse_object_id(owner)
    query.update(search_filter(q, ("name", "address")))

    docs = list(
        get_db()[PROPERTIES]
        .find(query)
        .sort("created_at", -1)
        .skip(offset)
        .limit(limit)
    )
    assert_docs_owned(docs, ctx, label="list_properties")

    return [Property(**doc_to_dict(doc)) for doc in docs]


@router.get("/{property_id}", response_model=Property)
def get_property(property_id: str, ctx: AuthContext = Depends(require_auth_context)) -> Property:
    doc = find_owned_or_404(get_db()[PROPERTIES], ctx, property_id, NOT_FOUND)
    return Property(**doc_to_dict(doc))


@router.post("", response_model=Property, status_code=201)
def create_property(
    request: PropertyCreateRequest,
    ctx: AuthContext = Depends(require_auth_context),
) -> Property:
    """
    Create a property owned by the caller and link it to the caller's user record.

    Raises:
        HTTPException(400): Invalid input (validation handler)
        HTTPException(409): Name or address already used by one of the caller's properties
    """
    db = get_db()
    properties = db[PROPERTIES]

    # Security: owner from auth context ONLY
    owner = ctx.object_id
    data = request.model_dump(mode="json")
    check_duplicates(properties, owner, data)

    now = now_utc()
    doc = {**data, "owner": owner, "created_at": now, "updated_at": now}

    try:
        result = properties.insert_one(doc)
    except DuplicateKeyError as e:
        raise HTTPException(status_code=409, detail=property_exists_detail(e))

    doc["_id"] = result.inserted_id
    link_to_owner(db, "properties", owner, result.inserted_id)

    if IS_DEV:
        print(f"[PROPERTIES] Created property_id={result.inserted_id}, owner={ctx.user_id}")

    return Property(**doc_to_dict(doc))


@router.put("/{property_id}", response_model=Property)
def update_property(
    property_id: str,
    request: PropertyUpdateRequest,
    ctx: AuthContext = Depends(require_auth_context),
) -> Property:
    """
    Partially update a property the caller may access.

    Raises:
        HTTPException(400): Empty body
        HTTPException(404): Property not found or not owned
        HTTPException(409): Name or address clash with another property of the same owner
    """
    updates = request.model_dump(exclude_none=True, mode="json")
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    properties = get_db()[PROPERTIES]
    existing = find_owned_or_404(properties, ctx, property_id, NOT_FOUND)
    check_duplicates(properties, existing["owner"], updates, exclude_id=existing["_id"])

    updates["updated_at"] = now_utc()

    try:
        doc = properties.find_one_and_update(
            scoped_query(ctx, property_id),
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError as e:
        raise HTTPException(status_code=409, detail=property_exists_detail(e))

    if not doc:
        raise HTTPException(status_code=404, detail=NOT_FOUND)

    replace_stored_image(existing.get("image"), updates.get("image"))

    if IS_DEV:
        print(f"[PROPERTIES] Updated property_id={property_id}, by={ctx.user_id}")

    return Property(**doc_to_dict(doc))


@router.delete("/{property_id}", response_model=PropertyDeletedResponse)
def delete_property(property_id: str, ctx: AuthContext = Depends(require_auth_context)) -> PropertyDeletedResponse:
    db = get_db()

    doc = db[PROPERTIES].find_one_and_delete(scoped_query(ctx, property_id))
    if not doc:
        raise HTTPException(status_code=404, detail=NOT_FOUND)

    unlink_from_owner(db, "properties", doc["owner"], doc["_id"])
    delete_image(doc.get("image"))

    if IS_DEV:
        print(f"[PROPERTIES] Deleted property_id={property_id}, by={ctx.user_id}")

    return PropertyDeletedResponse(message="Property deleted", property_deleted=Property(**doc_to_dict(doc)))


@router.put("/{property_id}/image", response_model=Property)
def upload_property_image(
    property_id: str,
    image: UploadFile = File(..., description="Image file (jpg, jpeg, png, gif, webp)"),
    ctx: AuthContext = Depends(require_auth_context),
) -> Property:
    """Replace the property's image; the previous one is removed from storage."""
    properties = get_db()[PROPERTIES]
    existing = find_owned_or_404(properties, ctx, property_id, NOT_FOUND)

    url = upload_image(image)
    doc = properties.find_one_and_update(
        scoped_query(ctx, property_id),
        {"$set": {"image": url, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        delete_image(url)
        raise HTTPException(status_code=404, detail=NOT_FOUND)

    replace_stored_image(existing.get("image"), url)

    return Property(**doc_to_dict(doc))
