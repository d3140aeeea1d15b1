from __future__ import annotations

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.config import settings
from carrental.core.errors import (
    Conflict,
    DomainError,
    Forbidden,
    NotFound,
    TransientStorageFailure,
    ValidationFailed,
)
from carrental.models.booking import ACTIVE_BOOKING_STATUSES, Booking
from carrental.models.user import User
from carrental.services.slots import Interval, has_overlap, validate_interval
from carrental.services.vehicles import append_reserved_interval, lock_vehicle, release_reserved_interval

logger = logging.getLogger(__name__)

# pending -> confirmed -> completed, and either of the first two -> cancelled
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}


# -------------------------
# Booking storage
# -------------------------
async def find_active_by_vehicle(db: AsyncSession, vehicle_id: int) -> list[Booking]:
    res = await db.execute(
        select(Booking).where(
            Booking.vehicle_id == vehicle_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
    )
    return list(res.scalars().all())


async def find_by_transaction_ref(db: AsyncSession, transaction_ref: str) -> Booking | None:
    res = await db.execute(select(Booking).where(Booking.transaction_ref == transaction_ref))
    return res.scalar_one_or_none()


async def insert_booking(db: AsyncSession, booking: Booking) -> Booking:
    db.add(booking)
    await db.flush()
    return booking


# -------------------------
# Creation
# -------------------------
def _is_same_request(booking: Booking, *, vehicle_id: int, user_id: int, interval: Interval) -> bool:
    return (
        booking.vehicle_id == vehicle_id
        and booking.user_id == user_id
        and Interval.utc(booking.starts_at, booking.ends_at) == interval
    )


async def _replayed_booking(
    db: AsyncSession,
    *,
    transaction_ref: str,
    vehicle_id: int,
    user_id: int,
    interval: Interval,
) -> Booking | None:
    """
    Look up a booking already created for this payment reference.
    Same request -> return it; different request -> Conflict.
    """
    existing = await find_by_transaction_ref(db, transaction_ref)
    if existing is None:
        return None
    if not _is_same_request(existing, vehicle_id=vehicle_id, user_id=user_id, interval=interval):
        raise Conflict("Transaction reference is already attached to another booking")
    return existing


async def _create_booking_tx(
    db: AsyncSession,
    *,
    vehicle_id: int,
    user_id: int,
    interval: Interval,
    hours: float,
    amount_cents: int,
    transaction_ref: str,
    payment_method: str,
) -> tuple[Booking, bool]:
    # 1) vehicle exists; lock it so overlapping bookers for it queue up behind us
    vehicle = await lock_vehicle(db, vehicle_id)
    if vehicle is None:
        raise NotFound("Vehicle not found")

    replay = await _replayed_booking(
        db,
        transaction_ref=transaction_ref,
        vehicle_id=vehicle_id,
        user_id=user_id,
        interval=interval,
    )
    if replay is not None:
        # nothing new to write; commit just releases the vehicle lock
        await db.commit()
        return replay, False

    # 2) overlap against active bookings only
    active = await find_active_by_vehicle(db, vehicle_id)
    if has_overlap(interval, (Interval.utc(b.starts_at, b.ends_at) for b in active)):
        raise Conflict("Vehicle is already booked for the selected time slot")

    # 3) + 4) payment was authorized upstream
    booking = await insert_booking(
        db,
        Booking(
            vehicle_id=vehicle_id,
            user_id=user_id,
            starts_at=interval.starts_at,
            ends_at=interval.ends_at,
            total_hours=hours,
            total_amount_cents=amount_cents,
            transaction_ref=transaction_ref,
            payment_method=payment_method,
            status="confirmed",
            payment_status="paid",
        ),
    )

    # 5) reserved slot on the vehicle
    await append_reserved_interval(db, vehicle_id, interval, booking_id=booking.id)

    # 6)
    await db.commit()
    return booking, True


async def create_booking(
    db: AsyncSession,
    *,
    vehicle_id: int,
    user_id: int,
    interval: Interval,
    hours: float,
    amount_cents: int,
    transaction_ref: str,
    payment_method: str = "stripe",
) -> tuple[Booking, bool]:
    """
    Reserve `interval` on a vehicle and record the paid booking, atomically.

    Returns (booking, created). `created` is False when the payment reference
    was already used for this exact request and the existing booking is
    returned instead of a new one.

    Raises:
      ValidationFailed          malformed interval, hours or amount
      NotFound                  vehicle does not exist
      Conflict                  slot overlaps an active booking, or the
                                reference belongs to a different booking
      TransientStorageFailure   timeout / lock or connection failure; safe to retry

    Any failure leaves bookings and reserved slots exactly as they were.
    """
    validate_interval(interval)
    if hours <= 0:
        raise ValidationFailed("Total hours must be positive.")
    if amount_cents < 0:
        raise ValidationFailed("Total amount cannot be negative.")
    if not (transaction_ref or "").strip():
        raise ValidationFailed("Transaction reference is required.")

    try:
        booking, created = await asyncio.wait_for(
            _create_booking_tx(
                db,
                vehicle_id=vehicle_id,
                user_id=user_id,
                interval=interval,
                hours=hours,
                amount_cents=amount_cents,
                transaction_ref=transaction_ref,
                payment_method=payment_method,
            ),
            timeout=settings.DB_OPERATION_TIMEOUT_SECONDS,
        )
    except DomainError as e:
        await db.rollback()
        logger.info("Booking rejected for vehicle %s by user %s: %s", vehicle_id, user_id, e.detail)
        raise
    except asyncio.TimeoutError:
        await db.rollback()
        logger.warning("Booking transaction timed out for vehicle %s", vehicle_id)
        raise TransientStorageFailure("Booking timed out, please retry")
    except IntegrityError:
        # lost a race on the unique transaction_ref; the winner's row decides
        await db.rollback()
        replay = await _replayed_booking(
            db,
            transaction_ref=transaction_ref,
            vehicle_id=vehicle_id,
            user_id=user_id,
            interval=interval,
        )
        if replay is None:
            raise
        return replay, False
    except (OperationalError, DBAPIError) as e:
        await db.rollback()
        logger.warning("Booking transaction aborted for vehicle %s: %s", vehicle_id, e)
        raise TransientStorageFailure("Booking could not be stored, please retry") from e
    except Exception:
        await db.rollback()
        raise

    if created:
        logger.info(
            "Booking %s created: vehicle=%s user=%s window=%s..%s",
            booking.id, vehicle_id, user_id, interval.starts_at.isoformat(), interval.ends_at.isoformat(),
        )
    else:
        logger.info("Booking %s replayed for transaction %s", booking.id, transaction_ref)
    return booking, created


# -------------------------
# Reads
# -------------------------
async def get_booking(db: AsyncSession, booking_id: int) -> Booking:
    booking = await db.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    return booking


async def get_booking_for(db: AsyncSession, booking_id: int, actor: User) -> Booking:
    booking = await get_booking(db, booking_id)
    if booking.user_id != actor.id and actor.role != "admin":
        raise Forbidden("Not authorized to access this booking")
    return booking


async def list_user_bookings(db: AsyncSession, user_id: int) -> list[Booking]:
    res = await db.execute(
        select(Booking)
        .where(Booking.user_id == user_id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
    )
    return list(res.scalars().all())


async def list_all_bookings(
    db: AsyncSession,
    *,
    status: str | None = None,
    vehicle_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Booking]:
    stmt = select(Booking).order_by(Booking.created_at.desc(), Booking.id.desc())
    if status:
        stmt = stmt.where(Booking.status == status)
    if vehicle_id:
        stmt = stmt.where(Booking.vehicle_id == vehicle_id)

    res = await db.execute(stmt.limit(limit).offset(offset))
    return list(res.scalars().all())


# -------------------------
# Status transitions
# -------------------------
async def _transition(db: AsyncSession, booking: Booking, new_status: str) -> Booking:
    if new_status not in ALLOWED_TRANSITIONS:
        raise ValidationFailed("Invalid status")

    current = booking.status
    if new_status == current == "cancelled":
        raise ValidationFailed("Booking already cancelled")
    if new_status not in ALLOWED_TRANSITIONS[current]:
        raise ValidationFailed(f"Cannot change booking status from {current} to {new_status}")

    try:
        booking.status = new_status
        if new_status == "cancelled":
            # frees the window; cancelling never needs an overlap re-check
            await release_reserved_interval(db, booking)

        await db.commit()
        await db.refresh(booking)
    except Exception:
        await db.rollback()
        raise

    logger.info("Booking %s: %s -> %s", booking.id, current, new_status)
    return booking


async def cancel_booking(db: AsyncSession, *, booking_id: int, actor: User) -> Booking:
    booking = await get_booking_for(db, booking_id, actor)
    return await _transition(db, booking, "cancelled")


async def update_booking_status(db: AsyncSession, *, booking_id: int, status: str) -> Booking:
    booking = await get_booking(db, booking_id)
    return await _transition(db, booking, status)
