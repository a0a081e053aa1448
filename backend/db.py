# backend/db.py
# MongoDB access layer: client lifecycle, indexes, and document helpers

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pymongo import ASCENDING, MongoClient
from pymongo.collation import Collation
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from backend.config import DB_NAME, DB_URL

# Collection names
USERS = "users"
PROPERTIES = "properties"
VEHICLES = "vehicles"

# Case-insensitive comparison for per-owner uniqueness
CASE_INSENSITIVE = Collation(locale="es", strength=2)

# Global client, created lazily (tests swap in an in-memory client)
_client: Optional[MongoClient] = None


def init_client() -> MongoClient:
    """Create the MongoDB client if it does not exist yet."""
    global _client

    if _client is None:
        _client = MongoClient(
            DB_URL,
            retryWrites=True,  # Retry writes once on transient failures
            tz_aware=True,     # Return datetimes as UTC-aware
            w="majority",      # Wait for majority acknowledgement
        )
        print(f"[DB] MongoDB client created (database={DB_NAME})")
    return _client


def set_client(client: Optional[MongoClient]) -> None:
    """Replace the global client. Passing None forces a reconnect on next use."""
    global _client
    _client = client


def get_db() -> Database:
    """Return the application database handle."""
    return init_client()[DB_NAME]


def ensure_indexes(db: Database) -> None:
    """Create the uniqueness and lookup indexes the collections rely on."""
    db[USERS].create_index([("name", ASCENDING)], unique=True, name="uniq_user_name")
    db[USERS].create_index([("email", ASCENDING)], unique=True, name="uniq_user_email")

    db[PROPERTIES].create_index(
        [("name", ASCENDING), ("owner", ASCENDING)],
        unique=True,
        collation=CASE_INSENSITIVE,
        name="uniq_property_name_owner",
    )
    db[PROPERTIES].create_index(
        [("address", ASCENDING), ("owner", ASCENDING)],
        unique=True,
        collation=CASE_INSENSITIVE,
        name="uniq_property_address_owner",
    )
    db[PROPERTIES].create_index([("owner", ASCENDING)], name="property_owner")

    db[VEHICLES].create_index([("plate", ASCENDING)], unique=True, name="uniq_vehicle_plate")
    db[VEHICLES].create_index([("owner", ASCENDING)], name="vehicle_owner")


def init_db() -> None:
    """
    Verify the connection and create indexes.
    Called once at application startup; raises if MongoDB is unreachable.
    """
    db = get_db()
    try:
        db.command("ping")
    except Exception as e:
        print(f"[DB] Error connecting to MongoDB: {e}")
        raise
    ensure_indexes(db)
    print("[DB] Connected to MongoDB, indexes ensured")


# ---------------------------------------------------------
# Document helpers
# ---------------------------------------------------------
def now_utc() -> datetime:
    """Current UTC time at the millisecond precision MongoDB stores."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def as_utc(value: datetime) -> datetime:
    # Stored datetimes are UTC; naive ones come from clients without tz_aware
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_object_id(value: Union[str, ObjectId]) -> ObjectId:
    """
    Convert a client-supplied id to ObjectId.

    Raises:
        HTTPException(400): If the value is not a valid ObjectId
    """
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid id")


def duplicate_key(exc: DuplicateKeyError) -> Dict[str, Any]:
    """Conflicting key fields of a duplicate-key error ({} when the server omits them)."""
    return (exc.details or {}).get("keyValue") or {}


def doc_to_dict(doc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Convert a MongoDB document to a JSON-ready dict.

    This is the single boundary for turning stored documents into API data:
    _id becomes id, ObjectId values become strings, datetimes are UTC-aware,
    and password hashes are always dropped.
    """
    if doc is None:
        return {}

    out: Dict[str, Any] = {}
    for key, value in doc.items():
        if key == "password":
            continue
        if key == "_id":
            out["id"] = str(value)
        elif isinstance(value, ObjectId):
            out[key] = str(value)
        elif isinstance(value, datetime):
            out[key] = as_utc(value)
        elif isinstance(value, list):
            out[key] = [str(v) if isinstance(v, ObjectId) else v for v in value]
        else:
            out[key] = value
    return out
