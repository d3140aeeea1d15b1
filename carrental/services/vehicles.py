# carrental/services/vehicles.py
from __future__ import annotations

from fastapi import HTTPException
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.models.booking import ACTIVE_BOOKING_STATUSES, Booking
from carrental.models.vehicle import Vehicle, VehicleReservedSlot
from carrental.schemas.vehicles import VehicleCreate, VehicleUpdate
from carrental.services.slots import Interval


# -------------------------
# Reservation storage (used by the booking transaction)
# -------------------------
async def find_vehicle_by_id(db: AsyncSession, vehicle_id: int) -> Vehicle | None:
    res = await db.execute(select(Vehicle).where(Vehicle.id == vehicle_id))
    return res.scalar_one_or_none()


async def lock_vehicle(db: AsyncSession, vehicle_id: int) -> Vehicle | None:
    """
    Take the per-vehicle write lock for the rest of the transaction.

    The version bump is a row write, so it blocks concurrent bookers on every
    backend (row lock on Postgres, database write lock on SQLite). FOR UPDATE
    is added on top where the dialect supports it.
    Returns None when the vehicle does not exist.
    """
    res = await db.execute(
        update(Vehicle)
        .where(Vehicle.id == vehicle_id)
        .values(reservation_version=Vehicle.reservation_version + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        return None

    res = await db.execute(
        select(Vehicle)
        .where(Vehicle.id == vehicle_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return res.scalar_one()


async def list_reserved_intervals(db: AsyncSession, vehicle_id: int) -> list[Interval]:
    res = await db.execute(
        select(VehicleReservedSlot.starts_at, VehicleReservedSlot.ends_at)
        .where(VehicleReservedSlot.vehicle_id == vehicle_id)
        .order_by(VehicleReservedSlot.starts_at)
    )
    return [Interval.utc(s, e) for s, e in res.all()]


async def append_reserved_interval(
    db: AsyncSession,
    vehicle_id: int,
    interval: Interval,
    *,
    booking_id: int | None = None,
) -> VehicleReservedSlot:
    slot = VehicleReservedSlot(
        vehicle_id=vehicle_id,
        booking_id=booking_id,
        starts_at=interval.starts_at,
        ends_at=interval.ends_at,
    )
    db.add(slot)
    await db.flush()
    return slot


async def release_reserved_interval(db: AsyncSession, booking: Booking) -> None:
    await db.execute(
        delete(VehicleReservedSlot).where(
            VehicleReservedSlot.vehicle_id == booking.vehicle_id,
            VehicleReservedSlot.booking_id == booking.id,
        )
    )


# -------------------------
# Inventory
# -------------------------
async def list_vehicles(
    db: AsyncSession,
    *,
    vehicle_type: str | None = None,
    available: bool | None = None,
    min_price_cents: int | None = None,
    max_price_cents: int | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Vehicle]:
    stmt = select(Vehicle).order_by(Vehicle.created_at.desc(), Vehicle.id.desc())

    if vehicle_type:
        stmt = stmt.where(Vehicle.vehicle_type == vehicle_type)
    if available is not None:
        stmt = stmt.where(Vehicle.is_available == available)
    if min_price_cents is not None:
        stmt = stmt.where(Vehicle.price_per_hour_cents >= min_price_cents)
    if max_price_cents is not None:
        stmt = stmt.where(Vehicle.price_per_hour_cents <= max_price_cents)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(Vehicle.name.ilike(like), Vehicle.brand.ilike(like), Vehicle.model.ilike(like))
        )

    res = await db.execute(stmt.limit(limit).offset(offset))
    return list(res.scalars().all())


async def reload_vehicle(db: AsyncSession, vehicle_id: int) -> Vehicle:
    # populate_existing so reserved_slots is reloaded after writes in this session
    res = await db.execute(
        select(Vehicle).where(Vehicle.id == vehicle_id).execution_options(populate_existing=True)
    )
    return res.scalar_one()


async def get_vehicle(db: AsyncSession, vehicle_id: int) -> Vehicle:
    vehicle = await find_vehicle_by_id(db, vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return vehicle


async def create_vehicle(db: AsyncSession, body: VehicleCreate) -> Vehicle:
    vehicle = Vehicle(**body.model_dump())
    try:
        db.add(vehicle)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Registration number already exists")
    except Exception:
        await db.rollback()
        raise

    return await reload_vehicle(db, vehicle.id)


async def update_vehicle(db: AsyncSession, vehicle_id: int, body: VehicleUpdate) -> Vehicle:
    vehicle = await get_vehicle(db, vehicle_id)

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(vehicle, field, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Registration number already exists")
    except Exception:
        await db.rollback()
        raise

    return await reload_vehicle(db, vehicle.id)


async def delete_vehicle(db: AsyncSession, vehicle_id: int) -> None:
    vehicle = await get_vehicle(db, vehicle_id)

    res = await db.execute(
        select(Booking.id)
        .where(Booking.vehicle_id == vehicle_id, Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        .limit(1)
    )
    if res.scalar_one_or_none() is not None:
        raise HTTPException(status_code=400, detail="Vehicle has active bookings")

    history = await db.execute(select(Booking.id).where(Booking.vehicle_id == vehicle_id).limit(1))
    if history.scalar_one_or_none() is not None:
        raise HTTPException(status_code=400, detail="Vehicle has booking history; mark it unavailable instead")

    try:
        await db.delete(vehicle)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Vehicle has booking history; mark it unavailable instead")
    except Exception:
        await db.rollback()
        raise
