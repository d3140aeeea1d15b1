# carrental/schemas/coupons.py
from __future__ import annotations

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

CouponVehicleType = Literal["economy", "sedan", "suv", "sports", "luxury", "van", "all"]


class CouponCreateIn(BaseModel):
    code: str = Field(..., min_length=3, max_length=20)
    description: str = Field(..., min_length=1)
    discount_type: Literal["percentage", "fixed"]
    discount_value: int = Field(..., ge=0)
    min_rental_amount_cents: int = Field(0, ge=0)
    max_discount_cents: int | None = Field(default=None, ge=0)
    valid_from: datetime | None = None
    valid_until: datetime
    usage_limit: int | None = Field(default=None, ge=1)
    user_limit: int = Field(1, ge=1)
    applicable_vehicle_types: List[CouponVehicleType] = Field(default_factory=lambda: ["all"])
    is_active: bool = True

    @model_validator(mode="after")
    def _check_percentage(self):
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class CouponUpdateIn(BaseModel):
    # code is immutable once created
    model_config = ConfigDict(extra="forbid")

    description: str | None = Field(default=None, min_length=1)
    discount_type: Literal["percentage", "fixed"] | None = None
    discount_value: int | None = Field(default=None, ge=0)
    min_rental_amount_cents: int | None = Field(default=None, ge=0)
    max_discount_cents: int | None = Field(default=None, ge=0)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    usage_limit: int | None = Field(default=None, ge=1)
    user_limit: int | None = Field(default=None, ge=1)
    applicable_vehicle_types: List[CouponVehicleType] | None = None
    is_active: bool | None = None


class CouponRedemptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    booking_id: int | None
    discount_cents: int
    used_at: datetime


class CouponPublicOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    description: str
    discount_type: str
    discount_value: int
    min_rental_amount_cents: int
    max_discount_cents: int | None
    valid_from: datetime
    valid_until: datetime
    applicable_vehicle_types: List[str]


class CouponAdminOut(CouponPublicOut):
    id: int
    usage_limit: int | None
    usage_count: int
    user_limit: int
    is_active: bool
    created_by_user_id: int | None
    created_at: datetime
    updated_at: datetime
    redemptions: List[CouponRedemptionOut] = Field(default_factory=list)


class CouponListOut(BaseModel):
    items: List[CouponAdminOut]
    total: int
    page: int
    pages: int


class CouponValidateIn(BaseModel):
    code: str = Field(..., min_length=1)
    rental_amount_cents: int = Field(..., gt=0)
    vehicle_type: str | None = None


class CouponApplyIn(CouponValidateIn):
    booking_id: int | None = None


class CouponQuoteOut(BaseModel):
    code: str
    description: str
    discount_type: str
    discount_value: int
    original_amount_cents: int
    discount_cents: int
    final_amount_cents: int
    savings_cents: int


class CouponApplyOut(BaseModel):
    code: str
    redemption_id: int
    discount_cents: int
    final_amount_cents: int
    message: str = "Coupon applied successfully"


class CouponStatsOut(BaseModel):
    total_coupons: int
    active_coupons: int
    expired_coupons: int
    total_usage: int
    average_discount_value: float
