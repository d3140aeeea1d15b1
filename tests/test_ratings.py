import pytest

from carrental.core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from carrental.models.booking import Booking
from carrental.services.bookings import create_booking, update_booking_status
from carrental.services.ratings import (
    create_rating,
    delete_rating,
    list_vehicle_ratings,
    update_rating,
    vehicle_rating_summary,
)
from carrental.services.vehicles import reload_vehicle
from carrental.services.slots import Interval

from conftest import at


async def completed_booking(db, user, vehicle, ref: str, day: int = 1) -> Booking:
    booking, _ = await create_booking(
        db,
        vehicle_id=vehicle.id,
        user_id=user.id,
        interval=Interval(at(10, day), at(14, day)),
        hours=4,
        amount_cents=200_000,
        transaction_ref=ref,
    )
    return await update_booking_status(db, booking_id=booking.id, status="completed")


async def test_rating_updates_vehicle_aggregate(db, customer, other_customer, vehicle):
    first = await completed_booking(db, customer, vehicle, "txn-1", day=1)
    second = await completed_booking(db, other_customer, vehicle, "txn-2", day=2)

    await create_rating(db, booking_id=first.id, user=customer, score=5, review="Great car")
    await create_rating(db, booking_id=second.id, user=other_customer, score=4, review=None)

    v = await reload_vehicle(db, vehicle.id)
    assert v.total_ratings == 2
    assert v.average_rating == 4.5

    booking = await db.get(Booking, first.id)
    assert booking.has_rated is True


@pytest.mark.parametrize("score", [0, 6, -1])
async def test_score_must_be_between_one_and_five(db, customer, vehicle, score):
    booking = await completed_booking(db, customer, vehicle, "txn-1")
    with pytest.raises(ValidationFailed) as e:
        await create_rating(db, booking_id=booking.id, user=customer, score=score, review=None)
    assert e.value.detail == "Rating must be between 1 and 5"


async def test_only_completed_bookings_can_be_rated(db, customer, vehicle):
    booking, _ = await create_booking(
        db,
        vehicle_id=vehicle.id,
        user_id=customer.id,
        interval=Interval(at(10), at(14)),
        hours=4,
        amount_cents=1000,
        transaction_ref="txn-1",
    )
    with pytest.raises(ValidationFailed) as e:
        await create_rating(db, booking_id=booking.id, user=customer, score=4, review=None)
    assert e.value.detail == "Can only rate completed bookings"


async def test_rating_preconditions(db, customer, other_customer, vehicle):
    booking = await completed_booking(db, customer, vehicle, "txn-1")

    with pytest.raises(NotFound):
        await create_rating(db, booking_id=9999, user=customer, score=4, review=None)
    with pytest.raises(Forbidden):
        await create_rating(db, booking_id=booking.id, user=other_customer, score=4, review=None)

    await create_rating(db, booking_id=booking.id, user=customer, score=4, review=None)
    with pytest.raises(Conflict) as e:
        await create_rating(db, booking_id=booking.id, user=customer, score=5, review=None)
    assert e.value.detail == "You have already rated this booking"


async def test_update_and_delete_rebuild_the_aggregate(db, customer, admin, vehicle):
    booking = await completed_booking(db, customer, vehicle, "txn-1")
    rating = await create_rating(db, booking_id=booking.id, user=customer, score=2, review=None)

    await update_rating(db, rating_id=rating.id, user=customer, score=5, review="Better on second thought")
    assert (await reload_vehicle(db, vehicle.id)).average_rating == 5.0

    await delete_rating(db, rating_id=rating.id, user=admin)
    v = await reload_vehicle(db, vehicle.id)
    assert (v.total_ratings, v.average_rating) == (0, 0.0)

    refreshed = await db.get(Booking, booking.id, populate_existing=True)
    assert refreshed.has_rated is False


async def test_only_the_author_can_edit(db, customer, other_customer, vehicle):
    booking = await completed_booking(db, customer, vehicle, "txn-1")
    rating = await create_rating(db, booking_id=booking.id, user=customer, score=3, review=None)

    with pytest.raises(Forbidden):
        await update_rating(db, rating_id=rating.id, user=other_customer, score=1, review=None)
    with pytest.raises(Forbidden):
        await delete_rating(db, rating_id=rating.id, user=other_customer)


async def test_summary_distribution(db, customer, vehicle):
    scores = [5, 5, 4, 1]
    for day, score in enumerate(scores, start=1):
        booking = await completed_booking(db, customer, vehicle, f"txn-{day}", day=day)
        await create_rating(db, booking_id=booking.id, user=customer, score=score, review=None)

    summary = await vehicle_rating_summary(db, vehicle.id)
    assert summary["total_ratings"] == 4
    assert summary["average_rating"] == 3.8
    assert summary["distribution"] == {5: 2, 4: 1, 3: 0, 2: 0, 1: 1}
    assert len(await list_vehicle_ratings(db, vehicle.id)) == 4
