"""
Coupon eligibility and discount arithmetic.

Everything here is pure: callers pass the coupon row (or anything with the
same attributes), the amounts in cents and the current time. No I/O.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol

from carrental.core.clock import as_utc
from carrental.core.config import settings
from carrental.core.errors import CouponIneligible

ALL_VEHICLE_TYPES = "all"


class CouponLike(Protocol):
    code: str
    discount_type: str
    discount_value: int
    min_rental_amount_cents: int
    max_discount_cents: int | None
    valid_from: datetime
    valid_until: datetime
    usage_limit: int | None
    usage_count: int
    user_limit: int
    applicable_vehicle_types: list[str]
    is_active: bool
    redemptions: Iterable


@dataclass(frozen=True)
class DiscountQuote:
    original_amount_cents: int
    discount_cents: int
    final_amount_cents: int


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _money(cents: int) -> str:
    return f"{settings.CURRENCY} {cents / 100:,.2f}"


def usage_limit_reached(coupon: CouponLike) -> bool:
    return coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit


def is_currently_valid(coupon: CouponLike, now: datetime) -> bool:
    now = as_utc(now)
    in_window = as_utc(coupon.valid_from) <= now <= as_utc(coupon.valid_until)
    return bool(coupon.is_active) and in_window and not usage_limit_reached(coupon)


def compute_discount(coupon: CouponLike, rental_amount_cents: int) -> int:
    if rental_amount_cents < (coupon.min_rental_amount_cents or 0):
        return 0

    if coupon.discount_type == "percentage":
        # round down to the cent
        discount = rental_amount_cents * coupon.discount_value // 100
        if coupon.max_discount_cents is not None:
            discount = min(discount, coupon.max_discount_cents)
    elif coupon.discount_type == "fixed":
        discount = coupon.discount_value
    else:
        raise ValueError(f"Unknown discount type: {coupon.discount_type!r}")

    return max(0, min(discount, rental_amount_cents))


def user_redemption_count(coupon: CouponLike, user_id: int) -> int:
    return sum(1 for r in coupon.redemptions if r.user_id == user_id)


def can_user_redeem(coupon: CouponLike, user_id: int) -> bool:
    return user_redemption_count(coupon, user_id) < coupon.user_limit


def check_eligibility(
    coupon: CouponLike | None,
    *,
    rental_amount_cents: int,
    now: datetime,
    vehicle_type: str | None = None,
    user_id: int | None = None,
) -> DiscountQuote:
    """
    Run the ordered checks and stop at the first failure.

    Raises CouponIneligible carrying the user-facing reason. The vehicle-type
    check is skipped when no type is given; the per-user check is skipped when
    no user is known (anonymous preview).
    """
    if coupon is None:
        raise CouponIneligible("unknown_code", "Invalid coupon code")

    if not coupon.is_active:
        raise CouponIneligible("inactive", "This coupon is no longer active")

    now = as_utc(now)
    valid_from = as_utc(coupon.valid_from)
    if now < valid_from:
        raise CouponIneligible(
            "not_yet_valid",
            f"This coupon is valid from {valid_from.strftime('%a %b %d %Y')}",
        )

    if now > as_utc(coupon.valid_until):
        raise CouponIneligible("expired", "This coupon has expired")

    if usage_limit_reached(coupon):
        raise CouponIneligible("usage_limit_reached", "This coupon has reached its usage limit")

    if rental_amount_cents < (coupon.min_rental_amount_cents or 0):
        raise CouponIneligible(
            "below_minimum",
            f"Minimum rental amount for this coupon is {_money(coupon.min_rental_amount_cents)}",
        )

    types = coupon.applicable_vehicle_types or [ALL_VEHICLE_TYPES]
    if vehicle_type and ALL_VEHICLE_TYPES not in types and vehicle_type not in types:
        raise CouponIneligible(
            "vehicle_type_not_applicable",
            "This coupon is not applicable for the selected vehicle type",
        )

    if user_id is not None and not can_user_redeem(coupon, user_id):
        raise CouponIneligible(
            "user_limit_reached",
            "You have already used this coupon the maximum number of times",
        )

    discount = compute_discount(coupon, rental_amount_cents)
    return DiscountQuote(
        original_amount_cents=rental_amount_cents,
        discount_cents=discount,
        final_amount_cents=rental_amount_cents - discount,
    )
