from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum

# Enums
class UserRole(str, Enum):
    user = "user"
    admin = "admin"

class PropertyType(str, Enum):
    apartment = "apartment"
    rural_house = "rural_house"
    flat = "flat"
    studio = "studio"
    other = "other"

class VehicleType(str, Enum):
    car = "car"
    motorcycle = "motorcycle"
    truck = "truck"
    van = "van"
    other = "other"

class RentalStatus(str, Enum):
    available = "available"
    rented = "rented"
    maintenance = "maintenance"

# Models (stored documents as returned by the API; see db.doc_to_dict)
class User(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    email: str
    role: UserRole = UserRole.user
    image: Optional[str] = None
    properties: List[str] = Field(default_factory=list)
    vehicles: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class Property(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    type: PropertyType
    address: str
    status: RentalStatus
    monthly_rent: float
    expenses: float
    paid: bool = False
    image: Optional[str] = None
    owner: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class Vehicle(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    type: VehicleType
    plate: str
    status: RentalStatus
    daily_rent: float
    expenses: float
    paid: bool = False
    image: Optional[str] = None
    owner: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
