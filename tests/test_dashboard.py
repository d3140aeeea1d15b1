from datetime import timedelta

import pytest

from carrental.core.clock import now_utc
from carrental.core.errors import ValidationFailed
from carrental.services.bookings import create_booking
from carrental.services.dashboard import dashboard_summary
from carrental.services.slots import Interval

from conftest import at


async def book(db, customer, vehicle):
    await create_booking(
        db,
        vehicle_id=vehicle.id,
        user_id=customer.id,
        interval=Interval(at(10), at(14)),
        hours=4,
        amount_cents=80_000,
        transaction_ref="txn-1",
    )


async def test_today_includes_fresh_bookings(db, customer, vehicle):
    await book(db, customer, vehicle)

    data = await dashboard_summary(db, period="today")
    assert data["period"] == "today"
    assert data["total_bookings"] == 1
    assert data["revenue_cents"] == 80_000


async def test_custom_window_in_the_past_excludes_them(db, customer, vehicle):
    await book(db, customer, vehicle)
    now = now_utc()

    data = await dashboard_summary(db, date_from=now - timedelta(days=10), date_to=now - timedelta(days=5))
    assert data["period"] == "custom"
    assert data["total_bookings"] == 0
    assert data["revenue_cents"] == 0
    assert data["total_users"] == 1


async def test_reversed_custom_window_is_rejected(db):
    now = now_utc()
    with pytest.raises(ValidationFailed):
        await dashboard_summary(db, date_from=now, date_to=now - timedelta(days=1))
