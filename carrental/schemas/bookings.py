from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class BookingCreateIn(BaseModel):
    vehicle_id: int
    starts_at: datetime
    ends_at: datetime
    total_hours: float = Field(..., gt=0)
    total_amount_cents: int = Field(..., ge=0)
    # payment provider reference, already authorized upstream
    transaction_ref: str = Field(..., min_length=1, max_length=255)
    payment_method: str = Field(default="stripe", max_length=32)


class BookingStatusIn(BaseModel):
    status: Literal["pending", "confirmed", "cancelled", "completed"]


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vehicle_id: int
    user_id: int
    starts_at: datetime
    ends_at: datetime
    total_hours: float
    total_amount_cents: int
    status: str
    payment_status: str
    payment_method: str
    transaction_ref: str | None
    has_rated: bool
    created_at: datetime
    updated_at: datetime
