from __future__ import annotations

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from carrental.models.booking import Booking
from carrental.models.rating import Rating
from carrental.models.user import User
from carrental.models.vehicle import Vehicle

logger = logging.getLogger(__name__)


def _check_score(score: int) -> None:
    if score < 1 or score > 5:
        raise ValidationFailed("Rating must be between 1 and 5")


async def rebuild_vehicle_rating(db: AsyncSession, vehicle_id: int) -> tuple[float, int]:
    """
    Recompute average_rating / total_ratings from approved ratings.
    Runs inside the caller's transaction, so the aggregate commits with the rating write.
    """
    res = await db.execute(
        select(func.avg(Rating.score), func.count(Rating.id)).where(
            Rating.vehicle_id == vehicle_id,
            Rating.is_approved.is_(True),
        )
    )
    avg, count = res.one()
    average = round(float(avg), 2) if count else 0.0

    await db.execute(
        update(Vehicle)
        .where(Vehicle.id == vehicle_id)
        .values(average_rating=average, total_ratings=int(count))
        .execution_options(synchronize_session=False)
    )
    return average, int(count)


async def get_rating(db: AsyncSession, rating_id: int) -> Rating:
    rating = await db.get(Rating, rating_id)
    if rating is None:
        raise NotFound("Rating not found")
    return rating


async def create_rating(
    db: AsyncSession,
    *,
    booking_id: int,
    user: User,
    score: int,
    review: str | None,
) -> Rating:
    _check_score(score)

    booking = await db.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    if booking.user_id != user.id:
        raise Forbidden("Not authorized to rate this booking")
    if booking.status != "completed":
        raise ValidationFailed("Can only rate completed bookings")

    res = await db.execute(select(Rating.id).where(Rating.booking_id == booking_id))
    if res.scalar_one_or_none() is not None:
        raise Conflict("You have already rated this booking")

    vehicle_id = booking.vehicle_id
    rating = Rating(
        booking_id=booking_id,
        vehicle_id=vehicle_id,
        user_id=user.id,
        score=score,
        review=review or "",
    )

    try:
        db.add(rating)
        booking.has_rated = True
        await db.flush()
        await rebuild_vehicle_rating(db, vehicle_id)
        await db.commit()
    except IntegrityError:
        # unique booking_id: a concurrent request rated it first
        await db.rollback()
        raise Conflict("You have already rated this booking")
    except Exception:
        await db.rollback()
        raise

    logger.info("Rating %s (%s/5) added for vehicle %s", rating.id, score, vehicle_id)
    return rating


async def update_rating(
    db: AsyncSession,
    *,
    rating_id: int,
    user: User,
    score: int | None,
    review: str | None,
) -> Rating:
    rating = await get_rating(db, rating_id)
    if rating.user_id != user.id:
        raise Forbidden("Not authorized to update this rating")
    if score is not None:
        _check_score(score)

    try:
        if score is not None:
            rating.score = score
        if review is not None:
            rating.review = review
        await db.flush()
        await rebuild_vehicle_rating(db, rating.vehicle_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return rating


async def delete_rating(db: AsyncSession, *, rating_id: int, user: User) -> None:
    rating = await get_rating(db, rating_id)
    if rating.user_id != user.id and user.role != "admin":
        raise Forbidden("Not authorized to delete this rating")

    vehicle_id = rating.vehicle_id
    booking_id = rating.booking_id

    try:
        await db.delete(rating)
        await db.flush()
        await db.execute(
            update(Booking)
            .where(Booking.id == booking_id)
            .values(has_rated=False)
            .execution_options(synchronize_session=False)
        )
        await rebuild_vehicle_rating(db, vehicle_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def list_vehicle_ratings(db: AsyncSession, vehicle_id: int) -> list[Rating]:
    res = await db.execute(
        select(Rating)
        .where(Rating.vehicle_id == vehicle_id, Rating.is_approved.is_(True))
        .order_by(Rating.created_at.desc(), Rating.id.desc())
    )
    return list(res.scalars().all())


async def list_user_ratings(db: AsyncSession, user_id: int) -> list[Rating]:
    res = await db.execute(
        select(Rating).where(Rating.user_id == user_id).order_by(Rating.created_at.desc(), Rating.id.desc())
    )
    return list(res.scalars().all())


async def vehicle_rating_summary(db: AsyncSession, vehicle_id: int) -> dict:
    res = await db.execute(
        select(Rating.score, func.count(Rating.id))
        .where(Rating.vehicle_id == vehicle_id, Rating.is_approved.is_(True))
        .group_by(Rating.score)
    )
    distribution = {s: 0 for s in (5, 4, 3, 2, 1)}
    for score, count in res.all():
        distribution[int(score)] = int(count)

    total = sum(distribution.values())
    average = sum(s * c for s, c in distribution.items()) / total if total else 0.0

    return {
        "vehicle_id": vehicle_id,
        "average_rating": round(average, 1),
        "total_ratings": total,
        "distribution": distribution,
    }
