"""
User notifications.

Each kind of notification is its own small dataclass carrying only the fields
it needs; `render` turns one into the stored title/message/meta by dispatching
on the type. Sending is fire-and-forget: routers schedule `dispatch_notification`
as a background task after their own transaction has committed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import singledispatch
from typing import Callable, Union

import httpx
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.clock import now_utc
from carrental.core.config import settings
from carrental.core.db import SessionLocal
from carrental.core.errors import Forbidden, NotFound
from carrental.integrations.notify_webhook_client import NotifyWebhookClient, NotifyWebhookError
from carrental.models.notification import Notification
from carrental.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingConfirmed:
    user_id: int
    booking_id: int
    vehicle_name: str
    starts_at: datetime
    ends_at: datetime
    amount_cents: int


@dataclass(frozen=True)
class BookingCancelled:
    user_id: int
    booking_id: int
    vehicle_name: str


@dataclass(frozen=True)
class CouponRedeemed:
    user_id: int
    coupon_code: str
    discount_cents: int
    booking_id: int | None = None


@dataclass(frozen=True)
class RatingReceived:
    user_id: int
    vehicle_name: str
    score: int


@dataclass(frozen=True)
class SystemMessage:
    user_id: int
    title: str
    message: str
    priority: str = "medium"


Notice = Union[BookingConfirmed, BookingCancelled, CouponRedeemed, RatingReceived, SystemMessage]


@dataclass(frozen=True)
class Rendered:
    kind: str
    title: str
    message: str
    priority: str = "medium"
    channel: str = "in_app"
    meta: dict = field(default_factory=dict)


def _money(cents: int) -> str:
    return f"{settings.CURRENCY} {cents / 100:,.2f}"


def _when(dt: datetime) -> str:
    return dt.strftime("%d %b %Y %H:%M UTC")


@singledispatch
def render(notice) -> Rendered:
    raise TypeError(f"Unsupported notification type: {type(notice).__name__}")


@render.register
def _(notice: BookingConfirmed) -> Rendered:
    return Rendered(
        kind="booking_confirmation",
        title="Booking confirmed",
        message=(
            f"Your booking for {notice.vehicle_name} from {_when(notice.starts_at)} "
            f"to {_when(notice.ends_at)} is confirmed. Amount paid: {_money(notice.amount_cents)}."
        ),
        priority="high",
        meta={"booking_id": notice.booking_id, "amount_cents": notice.amount_cents},
    )


@render.register
def _(notice: BookingCancelled) -> Rendered:
    return Rendered(
        kind="booking_cancelled",
        title="Booking cancelled",
        message=f"Your booking #{notice.booking_id} for {notice.vehicle_name} has been cancelled.",
        priority="high",
        meta={"booking_id": notice.booking_id},
    )


@render.register
def _(notice: CouponRedeemed) -> Rendered:
    return Rendered(
        kind="coupon_redeemed",
        title="Coupon applied",
        message=f"Coupon {notice.coupon_code} saved you {_money(notice.discount_cents)}.",
        priority="low",
        meta={"coupon_code": notice.coupon_code, "booking_id": notice.booking_id},
    )


@render.register
def _(notice: RatingReceived) -> Rendered:
    return Rendered(
        kind="rating_received",
        title="Thanks for your feedback",
        message=f"You rated {notice.vehicle_name} {notice.score}/5.",
        priority="low",
        meta={"score": notice.score},
    )


@render.register
def _(notice: SystemMessage) -> Rendered:
    return Rendered(
        kind="system_message",
        title=notice.title,
        message=notice.message,
        priority=notice.priority,
    )


async def record_notification(db: AsyncSession, notice: Notice) -> Notification:
    r = render(notice)
    n = Notification(
        user_id=notice.user_id,
        kind=r.kind,
        channel=r.channel,
        title=r.title[:200],
        message=r.message[:1000],
        priority=r.priority,
        status="pending",
        meta=r.meta,
    )
    db.add(n)
    await db.commit()
    return n


async def dispatch_notification(
    notice: Notice,
    *,
    session_factory: Callable[[], AsyncSession] = SessionLocal,
    client: NotifyWebhookClient | None = None,
) -> None:
    """Store and deliver one notification. Never raises; failures are logged."""
    client = client or NotifyWebhookClient()

    try:
        async with session_factory() as db:
            n = await record_notification(db, notice)

            status = "sent"
            if client.enabled:
                try:
                    await client.deliver(
                        notification_id=n.id,
                        user_id=n.user_id,
                        kind=n.kind,
                        channel=n.channel,
                        title=n.title,
                        message=n.message,
                        meta=n.meta,
                    )
                except (NotifyWebhookError, httpx.HTTPError) as e:
                    status = "failed"
                    logger.warning("Notification %s delivery failed: %s", n.id, e)

            n.status = status
            await db.commit()
    except Exception:
        logger.exception("Failed to dispatch %s for user %s", type(notice).__name__, notice.user_id)


# -------------------------
# Inbox
# -------------------------
async def list_user_notifications(db: AsyncSession, user_id: int, *, limit: int = 50) -> list[Notification]:
    res = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    return list(res.scalars().all())


async def unread_count(db: AsyncSession, user_id: int) -> int:
    res = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
    )
    return int(res.scalar_one())


async def _owned_notification(db: AsyncSession, notification_id: int, user: User) -> Notification:
    n = await db.get(Notification, notification_id)
    if n is None:
        raise NotFound("Notification not found")
    if n.user_id != user.id:
        raise Forbidden("Not authorized to access this notification")
    return n


async def mark_read(db: AsyncSession, *, notification_id: int, user: User) -> Notification:
    n = await _owned_notification(db, notification_id, user)
    if not n.is_read:
        n.is_read = True
        n.read_at = now_utc()
        n.status = "read"
        await db.commit()
    return n


async def mark_all_read(db: AsyncSession, user_id: int) -> int:
    res = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=now_utc(), status="read")
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return int(res.rowcount or 0)


async def delete_notification(db: AsyncSession, *, notification_id: int, user: User) -> None:
    n = await _owned_notification(db, notification_id, user)
    await db.delete(n)
    await db.commit()
