from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.clock import as_utc, now_utc
from carrental.core.config import settings
from carrental.core.errors import ValidationFailed
from carrental.models.booking import BOOKING_STATUSES, Booking
from carrental.models.coupon import CouponRedemption
from carrental.models.user import User
from carrental.models.vehicle import Vehicle

PERIODS = ("overall", "today", "month")


@dataclass
class _Range:
    period: str
    date_from: datetime | None
    date_to: datetime | None


def _resolve_period(period: str, date_from: datetime | None, date_to: datetime | None) -> _Range:
    """
    period: overall | today | month (last 30 days), all in UTC.
    date_from/date_to override period if provided.
    """
    if date_from is not None or date_to is not None:
        r = _Range(
            period="custom",
            date_from=as_utc(date_from) if date_from else None,
            date_to=as_utc(date_to) if date_to else None,
        )
        if r.date_from and r.date_to and r.date_to < r.date_from:
            raise ValidationFailed("date_to must not be before date_from")
        return r

    period = (period or "overall").strip().lower()
    if period not in PERIODS:
        raise ValidationFailed(f"Unknown period: {period}")

    if period == "overall":
        return _Range(period="overall", date_from=None, date_to=None)

    now = now_utc()
    if period == "today":
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return _Range(period="today", date_from=start, date_to=now)

    return _Range(period="month", date_from=now - timedelta(days=30), date_to=now)


def _apply_time_filter(stmt, dt_col, r: _Range):
    if r.date_from is not None:
        stmt = stmt.where(dt_col >= r.date_from)
    if r.date_to is not None:
        stmt = stmt.where(dt_col <= r.date_to)
    return stmt


async def dashboard_summary(
    db: AsyncSession,
    *,
    period: str = "overall",
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> dict:
    r = _resolve_period(period, date_from, date_to)

    total_users = (await db.execute(select(func.count(User.id)))).scalar_one()
    total_vehicles, available_vehicles = (
        await db.execute(
            select(
                func.count(Vehicle.id),
                func.coalesce(func.sum(case((Vehicle.is_available.is_(True), 1), else_=0)), 0),
            )
        )
    ).one()

    by_status = {s: 0 for s in BOOKING_STATUSES}
    stmt = _apply_time_filter(
        select(Booking.status, func.count(Booking.id)).group_by(Booking.status),
        Booking.created_at,
        r,
    )
    for status, count in (await db.execute(stmt)).all():
        by_status[status] = int(count)

    revenue_stmt = _apply_time_filter(
        select(func.coalesce(func.sum(Booking.total_amount_cents), 0)).where(
            Booking.payment_status == "paid",
            Booking.status != "cancelled",
        ),
        Booking.created_at,
        r,
    )
    revenue = (await db.execute(revenue_stmt)).scalar_one()

    redemptions_stmt = _apply_time_filter(
        select(func.count(CouponRedemption.id)),
        CouponRedemption.used_at,
        r,
    )
    redemptions = (await db.execute(redemptions_stmt)).scalar_one()

    return {
        "period": r.period,
        "date_from": r.date_from,
        "date_to": r.date_to,
        "total_users": int(total_users),
        "total_vehicles": int(total_vehicles or 0),
        "available_vehicles": int(available_vehicles or 0),
        "total_bookings": sum(by_status.values()),
        "bookings_by_status": by_status,
        "revenue_cents": int(revenue or 0),
        "coupon_redemptions": int(redemptions or 0),
        "currency": settings.CURRENCY,
    }
