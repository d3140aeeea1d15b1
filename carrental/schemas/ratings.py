from __future__ import annotations

from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class RatingCreateIn(BaseModel):
    booking_id: int
    # range enforced by the service so out-of-range scores get the domain message
    score: int
    review: str | None = Field(default=None, max_length=500)


class RatingUpdateIn(BaseModel):
    score: int | None = None
    review: str | None = Field(default=None, max_length=500)


class RatingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    booking_id: int
    vehicle_id: int
    user_id: int
    score: int
    review: str | None
    is_approved: bool
    created_at: datetime
    updated_at: datetime


class RatingSummaryOut(BaseModel):
    vehicle_id: int
    average_rating: float
    total_ratings: int
    distribution: Dict[int, int]


class RatingListOut(BaseModel):
    count: int
    items: List[RatingOut]
