from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.db import get_db
from carrental.core.deps import get_current_user
from carrental.core.errors import DomainError, to_http
from carrental.models.user import User
from carrental.schemas.coupons import (
    CouponApplyIn,
    CouponApplyOut,
    CouponPublicOut,
    CouponQuoteOut,
    CouponValidateIn,
)
from carrental.services.coupons import apply_coupon, list_active_coupons, validate_coupon
from carrental.services.notifications import CouponRedeemed, dispatch_notification

router = APIRouter(prefix="/coupons", tags=["Coupons"])


@router.get("/active", response_model=list[CouponPublicOut])
async def active_coupons(db: AsyncSession = Depends(get_db)):
    return await list_active_coupons(db)


@router.post("/validate", response_model=CouponQuoteOut)
async def coupon_validate(
    body: CouponValidateIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        coupon, quote = await validate_coupon(
            db,
            code=body.code,
            rental_amount_cents=body.rental_amount_cents,
            vehicle_type=body.vehicle_type,
            user_id=int(current_user.id),
        )
    except DomainError as e:
        raise to_http(e)

    return CouponQuoteOut(
        code=coupon.code,
        description=coupon.description,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        original_amount_cents=quote.original_amount_cents,
        discount_cents=quote.discount_cents,
        final_amount_cents=quote.final_amount_cents,
        savings_cents=quote.discount_cents,
    )


@router.post("/apply", response_model=CouponApplyOut)
async def coupon_apply(
    body: CouponApplyIn,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user_id = int(current_user.id)
    try:
        coupon, redemption, quote = await apply_coupon(
            db,
            code=body.code,
            rental_amount_cents=body.rental_amount_cents,
            user_id=user_id,
            vehicle_type=body.vehicle_type,
            booking_id=body.booking_id,
        )
    except DomainError as e:
        raise to_http(e)

    background.add_task(
        dispatch_notification,
        CouponRedeemed(
            user_id=user_id,
            coupon_code=coupon.code,
            discount_cents=quote.discount_cents,
            booking_id=body.booking_id,
        ),
    )
    return CouponApplyOut(
        code=coupon.code,
        redemption_id=int(redemption.id),
        discount_cents=quote.discount_cents,
        final_amount_cents=quote.final_amount_cents,
    )
