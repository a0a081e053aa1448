"""
backend/ownership.py

Ownership Guardrails (Defense in Depth)

All owner-scoped queries on properties and vehicles go through these helpers,
so that a non-admin can never read or write another user's documents.

- In DEV: emit warnings for unsafe results
- In STAGING/PROD: fail fast with HTTP 500
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from bson import ObjectId
from fastapi import HTTPException
from pymongo.collection import Collection
from pymongo.database import Database

from backend.auth_context import AuthContext
from backend.config import IS_DEV
from backend.db import USERS, parse_object_id
from backend.rbac import owner_filter


def scoped_query(ctx: AuthContext, doc_id: str) -> Dict[str, Any]:
    """
    Build the filter for a single owned document: its id plus, for
    non-admins, the caller as owner.
    """
    return {"_id": parse_object_id(doc_id), **owner_filter(ctx)}


def find_owned_or_404(
    collection: Collection,
    ctx: AuthContext,
    doc_id: str,
    not_found_detail: str,
) -> Dict[str, Any]:
    """
    Fetch a document the caller may access.
    Returns 404 (not 403) when it belongs to someone else, to avoid leaking existence.
    """
    doc = collection.find_one(scoped_query(ctx, doc_id))
    if not doc:
        if IS_DEV:
            print(f"[SECURITY] Owned lookup miss: collection={collection.name}, id={doc_id}, caller={ctx.user_id}")
        raise HTTPException(status_code=404, detail=not_found_detail)
    return doc


def search_filter(q: Optional[str], fields: Sequence[str]) -> Dict[str, Any]:
    """Case-insensitive substring match of q on any of fields ({} when q is empty)."""
    if not q:
        return {}
    pattern = re.escape(q)
    return {"$or": [{field: {"$regex": pattern, "$options": "i"}} for field in fields]}


def exact_ci(value: str) -> Dict[str, Any]:
    """Case-insensitive whole-value match."""
    return {"$regex": f"^{re.escape(value)}$", "$options": "i"}


def assert_docs_owned(docs: Iterable[Dict[str, Any]], ctx: AuthContext, label: str = "") -> None:
    """
    Guardrail: assert every returned document belongs to the caller.
    Admins are exempt since they may read every owner's documents.

    Raises:
        HTTPException(500): On a mismatch outside dev
    """
    if ctx.is_admin:
        return

    expected = ctx.object_id
    mismatches: List[str] = [str(d.get("_id")) for d in docs if d.get("owner") != expected]

    if mismatches:
        error_msg = f"[SECURITY] Ownership violation{f' in {label}' if label else ''}"
        detail_msg = f"{len(mismatches)} document(s) not owned by user_id={ctx.user_id}"

        if IS_DEV:
            print(f"{error_msg}: {detail_msg} (DEV warning) ids={mismatches[:3]}")
        else:
            print(f"{error_msg}: {detail_msg} (PRODUCTION - failing fast)")
            raise HTTPException(
                status_code=500,
                detail="Ownership violation detected - this is a server error",
            )


def link_to_owner(db: Database, field: str, owner: ObjectId, doc_id: ObjectId) -> None:
    """Append doc_id to the owner's list (user.properties / user.vehicles)."""
    db[USERS].update_one({"_id": owner}, {"$push": {field: doc_id}})


def unlink_from_owner(db: Database, field: str, owner: ObjectId, doc_id: ObjectId) -> None:
    db[USERS].update_one({"_id": owner}, {"$pull": {field: doc_id}})
