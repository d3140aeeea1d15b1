from __future__ import annotations

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field

VehicleType = Literal["economy", "sedan", "suv", "sports", "luxury", "van"]
FuelType = Literal["petrol", "diesel", "electric", "hybrid"]
Transmission = Literal["automatic", "manual"]


class VehicleCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    brand: str = Field(..., min_length=2, max_length=50)
    model: str = Field(..., min_length=1, max_length=50)
    year: int = Field(..., ge=1900, le=2100)
    vehicle_type: VehicleType = "sedan"
    price_per_hour_cents: int = Field(..., ge=0)
    seats: int = Field(5, ge=2, le=15)
    fuel_type: FuelType = "petrol"
    transmission: Transmission = "automatic"
    registration_number: str | None = Field(default=None, max_length=32)
    is_available: bool = True
    image_url: str = ""


class VehicleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=2, max_length=100)
    brand: str | None = Field(default=None, min_length=2, max_length=50)
    model: str | None = Field(default=None, min_length=1, max_length=50)
    year: int | None = Field(default=None, ge=1900, le=2100)
    vehicle_type: VehicleType | None = None
    price_per_hour_cents: int | None = Field(default=None, ge=0)
    seats: int | None = Field(default=None, ge=2, le=15)
    fuel_type: FuelType | None = None
    transmission: Transmission | None = None
    registration_number: str | None = Field(default=None, max_length=32)
    is_available: bool | None = None
    image_url: str | None = None


class ReservedSlotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    booking_id: int | None
    starts_at: datetime
    ends_at: datetime


class VehicleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    brand: str
    model: str
    year: int
    vehicle_type: str
    price_per_hour_cents: int
    seats: int
    fuel_type: str
    transmission: str
    registration_number: str | None
    is_available: bool
    image_url: str
    average_rating: float
    total_ratings: int
    created_at: datetime
    reserved_slots: List[ReservedSlotOut] = Field(default_factory=list)
