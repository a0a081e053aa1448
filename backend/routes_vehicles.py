"""
backend/routes_vehicles.py

Vehicle CRUD endpoints with owner-scoped queries.

Security guarantees:
- All endpoints require authentication, reads included
- Non-admins only ever see and modify their own vehicles
- Plates are unique across all owners
- owner comes from the auth context ONLY, never from the request body
"""

from __future__ import annotations

from typing import List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from backend.auth_context import AuthContext, require_auth_context
from backend.config import IS_DEV
from backend.db import VEHICLES, doc_to_dict, get_db, now_utc, parse_object_id
from backend.media import delete_image, replace_stored_image, upload_image
from backend.models import Vehicle
from backend.ownership import (
    assert_docs_owned,
    find_owned_or_404,
    link_to_owner,
    scoped_query,
    search_filter,
    unlink_from_owner,
)
from backend.rbac import owner_filter
from backend.schemas import VehicleCreateRequest, VehicleDeletedResponse, VehicleUpdateRequest


router = APIRouter(
    prefix="/api/vehicles",
    tags=["vehicles"],
)

NOT_FOUND = "Vehicle not found or access denied"


def check_plate_available(vehicles: Collection, plate: Optional[str], exclude_id: Optional[ObjectId] = None) -> None:
    """
    Raises:
        HTTPException(409): Any vehicle (of any owner) already has this plate
    """
    if plate is None:
        return
    query = {"plate": plate}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if vehicles.find_one(query):
        raise HTTPException(status_code=409, detail=f"Vehicle with plate {plate} already exists")


@router.get("", response_model=List[Vehicle])
def list_vehicles(
    q: Optional[str] = Query(None, min_length=1, max_length=200, description="Search query (name/plate)"),
    owner: Optional[str] = Query(None, description="Owner user ID (admin only)"),
    limit: int = Query(50, ge=1, le=200, description="Max results (default 50, max 200)"),
    offset: int = Query(0, ge=0, le=5000, description="Offset for pagination (default 0, max 5000)"),
    ctx: AuthContext = Depends(require_auth_context),
) -> List[Vehicle]:
    """List vehicles visible to the caller, newest first."""
    query = owner_filter(ctx)
    if ctx.is_admin and owner:
        query["owner"] = parse_object_id(owner)
    query.update(search_filter(q, ("name", "plate")))

    docs = list(
        get_db()[VEHICLES]
        .find(query)
        .sort("created_at", -1)
        .skip(offset)
        .limit(limit)
    )
    assert_docs_owned(docs, ctx, label="list_vehicles")

    return [Vehicle(**doc_to_dict(doc)) for doc in docs]


@router.get("/{vehicle_id}", response_model=Vehicle)
def get_vehicle(vehicle_id: str, ctx: AuthContext = Depends(require_auth_context)) -> Vehicle:
    doc = find_owned_or_404(get_db()[VEHICLES], ctx, vehicle_id, NOT_FOUND)
    return Vehicle(**doc_to_dict(doc))


@router.post("", response_model=Vehicle, status_code=201)
def create_vehicle(
    request: VehicleCreateRequest,
    ctx: AuthContext = Depends(require_auth_context),
) -> Vehicle:
    """
    Create a vehicle owned by the caller and link it to the caller's user record.

    Raises:
        HTTPException(400): Invalid input (validation handler)
        HTTPException(409): Plate already registered
    """
    db = get_db()
    vehicles = db[VEHICLES]

    # Security: owner from auth context ONLY
    owner = ctx.object_id
    data = request.model_dump(mode="json")
    check_plate_available(vehicles, data["plate"])

    now = now_utc()
    doc = {**data, "owner": owner, "created_at": now, "updated_at": now}

    try:
        result = vehicles.insert_one(doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail=f"Vehicle with plate {data['plate']} already exists")

    doc["_id"] = result.inserted_id
    link_to_owner(db, "vehicles", owner, result.inserted_id)

    if IS_DEV:
        print(f"[VEHICLES] Created vehicle_id={result.inserted_id}, owner={ctx.user_id}")

    return Vehicle(**doc_to_dict(doc))


@router.put("/{vehicle_id}", response_model=Vehicle)
def update_vehicle(
    vehicle_id: str,
    request: VehicleUpdateRequest,
    ctx: AuthContext = Depends(require_auth_context),
) -> Vehicle:
    """
    Partially update a vehicle the caller may access.

    Raises:
        HTTPException(400): Empty body
        HTTPException(404): Vehicle not found or not owned
        HTTPException(409): Plate already registered on another vehicle
    """
    updates = request.model_dump(exclude_none=True, mode="json")
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    vehicles = get_db()[VEHICLES]
    existing = find_owned_or_404(vehicles, ctx, vehicle_id, NOT_FOUND)
    check_plate_available(vehicles, updates.get("plate"), exclude_id=existing["_id"])

    updates["updated_at"] = now_utc()

    try:
        doc = vehicles.find_one_and_update(
            scoped_query(ctx, vehicle_id),
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail=f"Vehicle with plate {updates.get('plate')} already exists")

    if not doc:
        raise HTTPException(status_code=404, detail=NOT_FOUND)

    replace_stored_image(existing.get("image"), updates.get("image"))

    if IS_DEV:
        print(f"[VEHICLES] Updated vehicle_id={vehicle_id}, by={ctx.user_id}")

    return Vehicle(**doc_to_dict(doc))


@router.delete("/{vehicle_id}", response_model=VehicleDeletedResponse)
def delete_vehicle(vehicle_id: str, ctx: AuthContext = Depends(require_auth_context)) -> VehicleDeletedResponse:
    db = get_db()

    doc = db[VEHICLES].find_one_and_delete(scoped_query(ctx, vehicle_id))
    if not doc:
        raise HTTPException(status_code=404, detail=NOT_FOUND)

    unlink_from_owner(db, "vehicles", doc["owner"], doc["_id"])
    delete_image(doc.get("image"))

    if IS_DEV:
        print(f"[VEHICLES] Deleted vehicle_id={vehicle_id}, by={ctx.user_id}")

    return VehicleDeletedResponse(message="Vehicle deleted", vehicle_deleted=Vehicle(**doc_to_dict(doc)))


@router.put("/{vehicle_id}/image", response_model=Vehicle)
def upload_vehicle_image(
    vehicle_id: str,
    image: UploadFile = File(..., description="Image file (jpg, jpeg, png, gif, webp)"),
    ctx: AuthContext = Depends(require_auth_context),
) -> Vehicle:
    """Replace the vehicle's image; the previous one is removed from storage."""
    vehicles = get_db()[VEHICLES]
    existing = find_owned_or_404(vehicles, ctx, vehicle_id, NOT_FOUND)

    url = upload_image(image)
    doc = vehicles.find_one_and_update(
        scoped_query(ctx, vehicle_id),
        {"$set": {"image": url, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        delete_image(url)
        raise HTTPException(status_code=404, detail=NOT_FOUND)

    replace_stored_image(existing.get("image"), url)

    return Vehicle(**doc_to_dict(doc))
