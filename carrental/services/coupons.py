# carrental/services/coupons.py
from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.clock import as_utc, now_utc
from carrental.core.config import settings
from carrental.core.errors import Conflict, DomainError, Forbidden, NotFound, TransientStorageFailure
from carrental.models.booking import Booking
from carrental.models.coupon import Coupon, CouponRedemption
from carrental.models.vehicle import Vehicle
from carrental.schemas.coupons import CouponCreateIn, CouponUpdateIn
from carrental.services.coupon_rules import DiscountQuote, check_eligibility, normalize_code

logger = logging.getLogger(__name__)


# -------------------------
# Coupon storage
# -------------------------
async def find_coupon_by_code(db: AsyncSession, code: str) -> Coupon | None:
    # populate_existing so usage_count and redemptions are never stale within a session
    res = await db.execute(
        select(Coupon)
        .where(Coupon.code == normalize_code(code))
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def reload_coupon(db: AsyncSession, coupon_id: int) -> Coupon:
    # populate_existing so redemptions/usage_count reflect writes made in SQL
    res = await db.execute(
        select(Coupon).where(Coupon.id == coupon_id).execution_options(populate_existing=True)
    )
    return res.scalar_one()


async def _lock_coupon(db: AsyncSession, coupon_id: int) -> None:
    # a row write serialises redeemers of this coupon on every backend
    await db.execute(
        update(Coupon)
        .where(Coupon.id == coupon_id)
        .values(updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    await db.execute(select(Coupon.id).where(Coupon.id == coupon_id).with_for_update())


async def _count_user_redemptions(db: AsyncSession, coupon_id: int, user_id: int) -> int:
    res = await db.execute(
        select(func.count(CouponRedemption.id)).where(
            CouponRedemption.coupon_id == coupon_id,
            CouponRedemption.user_id == user_id,
        )
    )
    return int(res.scalar_one())


async def _find_booking_redemption(db: AsyncSession, coupon_id: int, booking_id: int) -> CouponRedemption | None:
    res = await db.execute(
        select(CouponRedemption).where(
            CouponRedemption.coupon_id == coupon_id,
            CouponRedemption.booking_id == booking_id,
        )
    )
    return res.scalar_one_or_none()


async def increment_usage(db: AsyncSession, coupon_id: int, redemption: CouponRedemption) -> bool:
    """
    usage_count + 1 in a single guarded UPDATE, then append the redemption.
    Returns False (and writes nothing) when the global limit is already reached.
    """
    res = await db.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
        )
        .values(usage_count=Coupon.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        return False

    redemption.coupon_id = coupon_id
    db.add(redemption)
    await db.flush()
    return True


# -------------------------
# Redemption
# -------------------------
async def _redeem_tx(
    db: AsyncSession,
    *,
    coupon_id: int,
    user_limit: int,
    user_id: int,
    booking_id: int | None,
    discount_cents: int,
) -> CouponRedemption:
    await _lock_coupon(db, coupon_id)

    # per-user limit is re-checked here, not only at preview time
    used = await _count_user_redemptions(db, coupon_id, user_id)
    if used >= user_limit:
        raise Conflict("Coupon usage limit reached for this user")

    redemption = CouponRedemption(user_id=user_id, booking_id=booking_id, discount_cents=discount_cents)
    if not await increment_usage(db, coupon_id, redemption):
        raise Conflict("This coupon has reached its usage limit")

    await db.commit()
    return redemption


async def redeem(
    db: AsyncSession,
    coupon: Coupon,
    *,
    user_id: int,
    booking_id: int | None = None,
    discount_cents: int = 0,
) -> tuple[CouponRedemption, bool]:
    """
    Record one use of `coupon` by `user_id`.

    Idempotent per (coupon, booking): a second call for the same booking by
    the same user returns the existing record with created=False.
    Returns (redemption, created).
    """
    coupon_id = int(coupon.id)
    user_limit = int(coupon.user_limit)

    if booking_id is not None:
        existing = await _find_booking_redemption(db, coupon_id, booking_id)
        if existing is not None:
            if existing.user_id != user_id:
                raise Conflict("Coupon was already applied to this booking by another user")
            return existing, False

    try:
        redemption = await asyncio.wait_for(
            _redeem_tx(
                db,
                coupon_id=coupon_id,
                user_limit=user_limit,
                user_id=user_id,
                booking_id=booking_id,
                discount_cents=discount_cents,
            ),
            timeout=settings.DB_OPERATION_TIMEOUT_SECONDS,
        )
    except DomainError:
        await db.rollback()
        raise
    except asyncio.TimeoutError:
        await db.rollback()
        logger.warning("Coupon redemption timed out for coupon %s", coupon_id)
        raise TransientStorageFailure("Coupon redemption timed out, please retry")
    except IntegrityError:
        # concurrent apply for the same booking won the unique (coupon, booking) index
        await db.rollback()
        if booking_id is not None:
            existing = await _find_booking_redemption(db, coupon_id, booking_id)
            if existing is not None and existing.user_id == user_id:
                return existing, False
        raise Conflict("Coupon was already applied to this booking")
    except (OperationalError, DBAPIError) as e:
        await db.rollback()
        logger.warning("Coupon redemption aborted for coupon %s: %s", coupon_id, e)
        raise TransientStorageFailure("Coupon redemption could not be stored, please retry") from e
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Coupon %s redeemed by user %s (booking=%s, discount=%s)",
        coupon_id, user_id, booking_id, discount_cents,
    )
    return redemption, True


# -------------------------
# Preview / apply
# -------------------------
async def validate_coupon(
    db: AsyncSession,
    *,
    code: str,
    rental_amount_cents: int,
    vehicle_type: str | None = None,
    user_id: int | None = None,
    now: datetime | None = None,
) -> tuple[Coupon, DiscountQuote]:
    coupon = await find_coupon_by_code(db, code)
    quote = check_eligibility(
        coupon,
        rental_amount_cents=rental_amount_cents,
        now=now or now_utc(),
        vehicle_type=vehicle_type,
        user_id=user_id,
    )
    return coupon, quote


async def _booking_for_coupon(db: AsyncSession, booking_id: int, user_id: int) -> Booking:
    booking = await db.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    if booking.user_id != user_id:
        raise Forbidden("Not authorized to apply a coupon to this booking")
    return booking


async def apply_coupon(
    db: AsyncSession,
    *,
    code: str,
    rental_amount_cents: int,
    user_id: int,
    vehicle_type: str | None = None,
    booking_id: int | None = None,
    now: datetime | None = None,
) -> tuple[Coupon, CouponRedemption, DiscountQuote]:
    """
    Full eligibility pipeline, then record the redemption.

    When a booking is given, it must belong to the user and its vehicle type is
    used unless one is passed explicitly. Re-applying the same coupon to the
    same booking returns the earlier redemption instead of counting twice.
    """
    if booking_id is not None:
        booking = await _booking_for_coupon(db, booking_id, user_id)
        if vehicle_type is None:
            vehicle = await db.get(Vehicle, booking.vehicle_id)
            vehicle_type = vehicle.vehicle_type if vehicle is not None else None

        coupon = await find_coupon_by_code(db, code)
        if coupon is not None:
            existing = await _find_booking_redemption(db, coupon.id, booking_id)
            if existing is not None and existing.user_id == user_id:
                # quoted against the booking, not the caller-supplied amount
                total = int(booking.total_amount_cents)
                discount = int(existing.discount_cents)
                quote = DiscountQuote(
                    original_amount_cents=total,
                    discount_cents=discount,
                    final_amount_cents=max(total - discount, 0),
                )
                return coupon, existing, quote

    coupon, quote = await validate_coupon(
        db,
        code=code,
        rental_amount_cents=rental_amount_cents,
        vehicle_type=vehicle_type,
        user_id=user_id,
        now=now,
    )
    redemption, _ = await redeem(
        db,
        coupon,
        user_id=user_id,
        booking_id=booking_id,
        discount_cents=quote.discount_cents,
    )
    return coupon, redemption, quote


async def list_active_coupons(db: AsyncSession, *, now: datetime | None = None) -> list[Coupon]:
    now = now or now_utc()
    res = await db.execute(
        select(Coupon)
        .where(
            Coupon.is_active.is_(True),
            Coupon.valid_from <= now,
            Coupon.valid_until >= now,
            or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
        )
        .order_by(Coupon.discount_value.desc())
    )
    return list(res.scalars().all())


# -------------------------
# Administration
# -------------------------
async def admin_create_coupon(db: AsyncSession, *, body: CouponCreateIn, created_by_user_id: int | None) -> Coupon:
    code = normalize_code(body.code)
    if await find_coupon_by_code(db, code) is not None:
        raise HTTPException(status_code=400, detail="Coupon code already exists")

    valid_from = as_utc(body.valid_from) if body.valid_from else now_utc()
    valid_until = as_utc(body.valid_until)
    if valid_until <= valid_from:
        raise HTTPException(status_code=400, detail="Valid until date must be after valid from date")

    coupon = Coupon(
        code=code,
        description=body.description,
        discount_type=body.discount_type,
        discount_value=body.discount_value,
        min_rental_amount_cents=body.min_rental_amount_cents,
        max_discount_cents=body.max_discount_cents,
        valid_from=valid_from,
        valid_until=valid_until,
        usage_limit=body.usage_limit,
        usage_count=0,
        user_limit=body.user_limit,
        applicable_vehicle_types=list(body.applicable_vehicle_types) or ["all"],
        is_active=body.is_active,
        created_by_user_id=created_by_user_id,
    )

    try:
        db.add(coupon)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Coupon code already exists")
    except Exception:
        await db.rollback()
        raise

    logger.info("Coupon %s created by user %s", code, created_by_user_id)
    return await reload_coupon(db, coupon.id)


async def admin_get_coupon(db: AsyncSession, coupon_id: int) -> Coupon:
    coupon = await db.get(Coupon, coupon_id)
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return coupon


async def admin_list_coupons(
    db: AsyncSession,
    *,
    is_active: bool | None = None,
    discount_type: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    filters = []
    if is_active is not None:
        filters.append(Coupon.is_active.is_(is_active))
    if discount_type:
        filters.append(Coupon.discount_type == discount_type)

    total = (await db.execute(select(func.count(Coupon.id)).where(*filters))).scalar_one()

    res = await db.execute(
        select(Coupon)
        .where(*filters)
        .order_by(Coupon.created_at.desc(), Coupon.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return {
        "items": list(res.scalars().all()),
        "total": int(total),
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
    }


async def admin_update_coupon(db: AsyncSession, *, coupon_id: int, body: CouponUpdateIn) -> Coupon:
    coupon = await admin_get_coupon(db, coupon_id)
    data = body.model_dump(exclude_unset=True)
    # only these two may be cleared back to NULL
    data = {
        k: v for k, v in data.items()
        if v is not None or k in ("max_discount_cents", "usage_limit")
    }

    valid_from = as_utc(data.get("valid_from") or coupon.valid_from)
    valid_until = as_utc(data.get("valid_until") or coupon.valid_until)
    if valid_until <= valid_from:
        raise HTTPException(status_code=400, detail="Valid until date must be after valid from date")

    discount_type = data.get("discount_type") or coupon.discount_type
    discount_value = data.get("discount_value", coupon.discount_value)
    if discount_type == "percentage" and discount_value > 100:
        raise HTTPException(status_code=400, detail="Percentage discount cannot exceed 100")

    try:
        for field, value in data.items():
            if field in ("valid_from", "valid_until") and value is not None:
                value = as_utc(value)
            setattr(coupon, field, value)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return await reload_coupon(db, coupon_id)


async def admin_delete_coupon(db: AsyncSession, coupon_id: int) -> None:
    coupon = await admin_get_coupon(db, coupon_id)
    try:
        await db.delete(coupon)
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def coupon_stats(db: AsyncSession, *, now: datetime | None = None) -> dict:
    now = now or now_utc()

    total = (await db.execute(select(func.count(Coupon.id)))).scalar_one()
    active = (await db.execute(select(func.count(Coupon.id)).where(Coupon.is_active.is_(True)))).scalar_one()
    expired = (await db.execute(select(func.count(Coupon.id)).where(Coupon.valid_until < now))).scalar_one()
    usage, avg_value = (
        await db.execute(select(func.coalesce(func.sum(Coupon.usage_count), 0), func.avg(Coupon.discount_value)))
    ).one()

    return {
        "total_coupons": int(total),
        "active_coupons": int(active),
        "expired_coupons": int(expired),
        "total_usage": int(usage or 0),
        "average_discount_value": float(avg_value or 0),
    }
