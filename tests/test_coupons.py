import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from carrental.core.db import SessionLocal
from carrental.core.errors import Conflict, CouponIneligible, Forbidden
from carrental.models.coupon import Coupon, CouponRedemption
from carrental.services.bookings import create_booking
from carrental.services.coupons import (
    apply_coupon,
    coupon_stats,
    find_coupon_by_code,
    list_active_coupons,
    redeem,
    reload_coupon,
    validate_coupon,
)
from carrental.services.slots import Interval

from conftest import at, make_coupon, make_user, make_vehicle


async def redemption_count() -> int:
    async with SessionLocal() as s:
        return int((await s.execute(select(func.count(CouponRedemption.id)))).scalar_one())


async def usage_count(coupon_id: int) -> int:
    async with SessionLocal() as s:
        return int((await s.execute(select(Coupon.usage_count).where(Coupon.id == coupon_id))).scalar_one())


async def test_apply_then_user_limit_blocks_second_use(db, customer):
    coupon = await make_coupon(db, code="SAVE10")

    applied, redemption, quote = await apply_coupon(db, code="save10", rental_amount_cents=2000, user_id=customer.id)
    assert applied.code == "SAVE10"
    assert (quote.discount_cents, quote.final_amount_cents) == (200, 1800)
    assert redemption.user_id == customer.id
    assert redemption.discount_cents == 200

    with pytest.raises(CouponIneligible) as e:
        await apply_coupon(db, code="SAVE10", rental_amount_cents=2000, user_id=customer.id)
    assert e.value.code == "user_limit_reached"

    assert await usage_count(coupon.id) == 1
    assert await redemption_count() == 1


async def test_validate_is_a_preview_without_writes(db, customer):
    coupon = await make_coupon(db, discount_value=20, max_discount_cents=500)

    _, quote = await validate_coupon(db, code="SAVE10", rental_amount_cents=5000, user_id=customer.id)
    assert quote.discount_cents == 500
    assert quote.final_amount_cents == 4500

    assert await usage_count(coupon.id) == 0
    assert await redemption_count() == 0


async def test_unknown_code_is_ineligible(db, customer):
    with pytest.raises(CouponIneligible) as e:
        await validate_coupon(db, code="NOPE", rental_amount_cents=5000)
    assert e.value.reason == "Invalid coupon code"


async def test_per_user_limit_is_rechecked_at_write_time(db, customer):
    coupon = await make_coupon(db)
    uid = customer.id

    _, created = await redeem(db, coupon, user_id=uid, discount_cents=100)
    assert created is True

    # bypasses the preview pipeline on purpose
    with pytest.raises(Conflict) as e:
        await redeem(db, coupon, user_id=uid, discount_cents=100)
    assert e.value.detail == "Coupon usage limit reached for this user"
    assert await redemption_count() == 1


async def test_global_limit_is_guarded_at_write_time(db, customer, other_customer):
    coupon = await make_coupon(db, usage_limit=1, user_limit=5)
    coupon_id, other_id = coupon.id, other_customer.id

    await redeem(db, coupon, user_id=customer.id, discount_cents=100)

    with pytest.raises(Conflict) as e:
        await redeem(db, coupon, user_id=other_id, discount_cents=100)
    assert e.value.detail == "This coupon has reached its usage limit"
    assert await usage_count(coupon_id) == 1


async def test_concurrent_redeemers_cannot_exceed_global_limit(db):
    coupon = await make_coupon(db, usage_limit=1, user_limit=1)
    coupon_id = coupon.id
    users = [await make_user(db, email=f"racer{i}@example.com") for i in range(2)]
    user_ids = [u.id for u in users]

    async def attempt(user_id):
        async with SessionLocal() as s:
            c = await find_coupon_by_code(s, "SAVE10")
            try:
                await redeem(s, c, user_id=user_id, discount_cents=100)
                return "redeemed"
            except Conflict:
                return "conflict"

    results = await asyncio.gather(*(attempt(uid) for uid in user_ids))
    assert sorted(results) == ["conflict", "redeemed"]
    assert await usage_count(coupon_id) == 1


async def test_reapplying_to_the_same_booking_counts_once(db, customer):
    uid = customer.id
    vehicle = await make_vehicle(db)
    coupon = await make_coupon(db, code="RIDE50", discount_type="fixed", discount_value=5000)
    booking, _ = await create_booking(
        db,
        vehicle_id=vehicle.id,
        user_id=uid,
        interval=Interval(at(10), at(14)),
        hours=4,
        amount_cents=200_000,
        transaction_ref="txn-1",
    )

    _, first, quote = await apply_coupon(
        db, code="RIDE50", rental_amount_cents=200_000, user_id=uid, booking_id=booking.id
    )
    _, again, quote_again = await apply_coupon(
        db, code="RIDE50", rental_amount_cents=200_000, user_id=uid, booking_id=booking.id
    )

    assert again.id == first.id
    assert quote.discount_cents == quote_again.discount_cents == 5000
    assert await usage_count(coupon.id) == 1
    assert await redemption_count() == 1


async def test_booking_must_belong_to_the_user(db, customer, other_customer):
    vehicle = await make_vehicle(db)
    await make_coupon(db)
    booking, _ = await create_booking(
        db,
        vehicle_id=vehicle.id,
        user_id=customer.id,
        interval=Interval(at(10), at(14)),
        hours=4,
        amount_cents=200_000,
        transaction_ref="txn-1",
    )

    with pytest.raises(Forbidden):
        await apply_coupon(
            db, code="SAVE10", rental_amount_cents=200_000, user_id=other_customer.id, booking_id=booking.id
        )


async def test_vehicle_type_comes_from_the_booking(db, customer):
    vehicle = await make_vehicle(db, vehicle_type="economy")
    await make_coupon(db, code="SUVONLY", applicable_vehicle_types=["suv"])
    booking, _ = await create_booking(
        db,
        vehicle_id=vehicle.id,
        user_id=customer.id,
        interval=Interval(at(10), at(14)),
        hours=4,
        amount_cents=200_000,
        transaction_ref="txn-1",
    )

    with pytest.raises(CouponIneligible) as e:
        await apply_coupon(
            db, code="SUVONLY", rental_amount_cents=200_000, user_id=customer.id, booking_id=booking.id
        )
    assert e.value.code == "vehicle_type_not_applicable"


async def test_active_list_only_shows_currently_valid_coupons(db):
    now = datetime.now(timezone.utc)
    await make_coupon(db, code="LIVE")
    await make_coupon(db, code="OLD", valid_from=now - timedelta(days=10), valid_until=now - timedelta(days=1))
    await make_coupon(db, code="OFF", is_active=False)
    await make_coupon(db, code="USEDUP", usage_limit=3, usage_count=3)
    await make_coupon(db, code="SOON", valid_from=now + timedelta(days=1), valid_until=now + timedelta(days=9))

    assert [c.code for c in await list_active_coupons(db)] == ["LIVE"]


async def test_stats(db, customer):
    now = datetime.now(timezone.utc)
    await make_coupon(db, code="A", discount_value=10)
    await make_coupon(db, code="B", discount_value=30, is_active=False)
    await make_coupon(db, code="C", discount_value=20, valid_from=now - timedelta(days=5), valid_until=now - timedelta(days=1))
    await apply_coupon(db, code="A", rental_amount_cents=1000, user_id=customer.id)

    stats = await coupon_stats(db)
    assert stats == {
        "total_coupons": 3,
        "active_coupons": 2,
        "expired_coupons": 1,
        "total_usage": 1,
        "average_discount_value": 20.0,
    }


async def test_reload_reflects_sql_side_usage_count(db, customer):
    coupon = await make_coupon(db)
    await redeem(db, coupon, user_id=customer.id, discount_cents=100)

    fresh = await reload_coupon(db, coupon.id)
    assert fresh.usage_count == 1
    assert [r.user_id for r in fresh.redemptions] == [customer.id]


async def test_replay_is_quoted_against_the_booking_total(db, customer):
    uid = customer.id
    vehicle = await make_vehicle(db)
    await make_coupon(db, code="RIDE50", discount_type="fixed", discount_value=5000)
    booking, _ = await create_booking(
        db,
        vehicle_id=vehicle.id,
        user_id=uid,
        interval=Interval(at(10), at(14)),
        hours=4,
        amount_cents=200_000,
        transaction_ref="txn-1",
    )
    await apply_coupon(db, code="RIDE50", rental_amount_cents=200_000, user_id=uid, booking_id=booking.id)

    _, _, quote = await apply_coupon(
        db, code="RIDE50", rental_amount_cents=1000, user_id=uid, booking_id=booking.id
    )
    assert quote.original_amount_cents == 200_000
    assert quote.discount_cents == 5000
    assert quote.final_amount_cents == 195_000
