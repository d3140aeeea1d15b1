from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.db import get_db
from carrental.core.deps import get_current_user, require_admin
from carrental.core.errors import DomainError, to_http
from carrental.models.user import User
from carrental.schemas.bookings import BookingCreateIn, BookingOut, BookingStatusIn
from carrental.services.bookings import (
    cancel_booking,
    create_booking,
    get_booking_for,
    list_all_bookings,
    list_user_bookings,
    update_booking_status,
)
from carrental.services.invoices import generate_booking_invoice_pdf
from carrental.services.notifications import BookingCancelled, BookingConfirmed, dispatch_notification
from carrental.services.slots import Interval
from carrental.services.vehicles import find_vehicle_by_id

router = APIRouter(prefix="/bookings", tags=["Bookings"])
admin_router = APIRouter(prefix="/admin/bookings", tags=["Admin - Bookings"])


async def _vehicle_name(db: AsyncSession, vehicle_id: int) -> str:
    vehicle = await find_vehicle_by_id(db, vehicle_id)
    return vehicle.name if vehicle else f"vehicle #{vehicle_id}"


@router.post("", response_model=BookingOut, status_code=201)
async def book_vehicle(
    body: BookingCreateIn,
    response: Response,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user_id = int(current_user.id)
    try:
        booking, created = await create_booking(
            db,
            vehicle_id=body.vehicle_id,
            user_id=user_id,
            interval=Interval.utc(body.starts_at, body.ends_at),
            hours=body.total_hours,
            amount_cents=body.total_amount_cents,
            transaction_ref=body.transaction_ref,
            payment_method=body.payment_method,
        )
    except DomainError as e:
        raise to_http(e)

    if not created:
        # replay of an earlier request with the same transaction reference
        response.status_code = 200
        return booking

    background.add_task(
        dispatch_notification,
        BookingConfirmed(
            user_id=user_id,
            booking_id=int(booking.id),
            vehicle_name=await _vehicle_name(db, booking.vehicle_id),
            starts_at=booking.starts_at,
            ends_at=booking.ends_at,
            amount_cents=int(booking.total_amount_cents),
        ),
    )
    return booking


@router.get("/mine", response_model=list[BookingOut])
async def my_bookings(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await list_user_bookings(db, int(current_user.id))


@router.get("/{booking_id}", response_model=BookingOut)
async def booking_detail(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await get_booking_for(db, booking_id, current_user)
    except DomainError as e:
        raise to_http(e)


@router.post("/{booking_id}/cancel", response_model=BookingOut)
async def booking_cancel(
    booking_id: int,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        booking = await cancel_booking(db, booking_id=booking_id, actor=current_user)
    except DomainError as e:
        raise to_http(e)

    background.add_task(
        dispatch_notification,
        BookingCancelled(
            user_id=int(booking.user_id),
            booking_id=int(booking.id),
            vehicle_name=await _vehicle_name(db, booking.vehicle_id),
        ),
    )
    return booking


@router.get("/{booking_id}/invoice.pdf")
async def booking_invoice_pdf(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        booking = await get_booking_for(db, booking_id, current_user)
    except DomainError as e:
        raise to_http(e)

    pdf_bytes = await generate_booking_invoice_pdf(db, booking)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="booking_{booking.id}_invoice.pdf"'},
    )


@admin_router.get("", response_model=list[BookingOut])
async def admin_list_bookings(
    status: Optional[str] = None,
    vehicle_id: Optional[int] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    return await list_all_bookings(db, status=status, vehicle_id=vehicle_id, limit=limit, offset=offset)


@admin_router.patch("/{booking_id}/status", response_model=BookingOut)
async def admin_update_booking_status(
    booking_id: int,
    body: BookingStatusIn,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    try:
        booking = await update_booking_status(db, booking_id=booking_id, status=body.status)
    except DomainError as e:
        raise to_http(e)

    if booking.status == "cancelled":
        background.add_task(
            dispatch_notification,
            BookingCancelled(
                user_id=int(booking.user_id),
                booking_id=int(booking.id),
                vehicle_name=await _vehicle_name(db, booking.vehicle_id),
            ),
        )
    return booking
