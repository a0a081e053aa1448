"""
backend/schemas.py

Pydantic request/response schemas for auth, users, properties and vehicles.
Security-first: owner/role fields are never accepted where the server sets them.
"""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from backend.models import (
    Property,
    PropertyType,
    RentalStatus,
    User,
    UserRole,
    Vehicle,
    VehicleType,
)

EMAIL_PATTERN = re.compile(r"^[\w.-]+@([\w-]+\.)+[\w-]{2,4}$")
PLATE_PATTERN = re.compile(r"^\d{4}[A-Z]{3}$")


def _strip(v):
    if isinstance(v, str):
        return v.strip()
    return v


def _check_email(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.lower()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Invalid email format")
    return v


def _check_plate(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.upper()
    if not PLATE_PATTERN.match(v):
        raise ValueError("Invalid plate format (e.g. 1234ABC)")
    return v


# ========================================================================
# AUTH SCHEMAS
# ========================================================================

class RegisterRequest(BaseModel):
    """Request schema for user registration.

    Security notes:
    - role is not part of the schema; new users are always "user"
    - name and email are trimmed, email is lower-cased
    """
    name: str = Field(..., min_length=3, max_length=20, description="Unique user name (3-20 chars)")
    email: str = Field(..., max_length=254, description="Unique email address")
    password: str = Field(..., min_length=8, max_length=128, description="Password (8-128 chars)")

    @field_validator("name", "email", mode="before")
    @classmethod
    def trim_strings(cls, v):
        return _strip(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _check_email(v)


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def trim_strings(cls, v):
        return _strip(v)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class LoginResponse(BaseModel):
    token: str
    user: User


class RegisterResponse(BaseModel):
    message: str
    user: User


# ========================================================================
# USER SCHEMAS
# ========================================================================

class UserUpdateRequest(BaseModel):
    """Partial update for a user. Only set fields are written."""
    name: Optional[str] = Field(None, min_length=3, max_length=20)
    email: Optional[str] = Field(None, max_length=254)
    password: Optional[str] = Field(None, min_length=8, max_length=128)
    role: Optional[UserRole] = None
    image: Optional[str] = Field(None, max_length=500)

    @field_validator("name", "email", "image", mode="before")
    @classmethod
    def trim_strings(cls, v):
        return _strip(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _check_email(v)


class UserDeletedResponse(BaseModel):
    message: str
    user_deleted: User


# ========================================================================
# PROPERTY SCHEMAS
# ========================================================================

class PropertyCreateRequest(BaseModel):
    """Request schema for creating a property. owner comes from the auth context."""
    name: str = Field(..., min_length=3, max_length=100, description="Property name (3-100 chars)")
    type: PropertyType
    address: str = Field(..., min_length=5, max_length=200, description="Address (5-200 chars)")
    status: RentalStatus
    monthly_rent: float = Field(..., ge=0, allow_inf_nan=False, description="Monthly rent, must not be negative")
    expenses: float = Field(..., ge=0, allow_inf_nan=False, description="Expenses, must not be negative")
    paid: bool = False
    image: Optional[str] = Field(None, max_length=500)

    @field_validator("name", "type", "address", "image", mode="before")
    @classmethod
    def trim_strings(cls, v):
        return _strip(v)


class PropertyUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    type: Optional[PropertyType] = None
    address: Optional[str] = Field(None, min_length=5, max_length=200)
    status: Optional[RentalStatus] = None
    monthly_rent: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    expenses: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    paid: Optional[bool] = None
    image: Optional[str] = Field(None, max_length=500)

    @field_validator("name", "type", "address", "image", mode="before")
    @classmethod
    def trim_strings(cls, v):
        return _strip(v)


class PropertyDeletedResponse(BaseModel):
    message: str
    property_deleted: Property


# ========================================================================
# VEHICLE SCHEMAS
# ========================================================================

class VehicleCreateRequest(BaseModel):
    """Request schema for creating a vehicle. Plates are unique across all owners."""
    name: str = Field(..., min_length=3, max_length=100, description="Vehicle name (3-100 chars)")
    type: VehicleType
    plate: str = Field(..., description="Plate, 4 digits + 3 letters (e.g. 1234ABC)")
    status: RentalStatus
    daily_rent: float = Field(..., ge=0, allow_inf_nan=False, description="Daily rent, must not be negative")
    expenses: float = Field(..., ge=0, allow_inf_nan=False, description="Expenses, must not be negative")
    paid: bool = False
    image: Optional[str] = Field(None, max_length=500)

    @field_validator("name", "type", "plate", "image", mode="before")
    @classmethod
    def trim_strings(cls, v):
        return _strip(v)

    @field_validator("plate")
    @classmethod
    def validate_plate(cls, v):
        return _check_plate(v)


class VehicleUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    type: Optional[VehicleType] = None
    plate: Optional[str] = None
    status: Optional[RentalStatus] = None
    daily_rent: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    expenses: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    paid: Optional[bool] = None
    image: Optional[str] = Field(None, max_length=500)

    @field_validator("name", "type", "plate", "image", mode="before")
    @classmethod
    def trim_strings(cls, v):
        return _strip(v)

    @field_validator("plate")
    @classmethod
    def validate_plate(cls, v):
        return _check_plate(v)


class VehicleDeletedResponse(BaseModel):
    message: str
    vehicle_deleted: Vehicle
