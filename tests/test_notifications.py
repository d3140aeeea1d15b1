import logging
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from carrental.core.db import SessionLocal
from carrental.core.errors import Forbidden
from carrental.integrations.notify_webhook_client import NotifyWebhookError
from carrental.models.notification import Notification
from carrental.services.notifications import (
    BookingCancelled,
    BookingConfirmed,
    CouponRedeemed,
    RatingReceived,
    SystemMessage,
    delete_notification,
    dispatch_notification,
    list_user_notifications,
    mark_all_read,
    mark_read,
    record_notification,
    render,
    unread_count,
)

from conftest import at


class FakeWebhook:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    @property
    def enabled(self) -> bool:
        return True

    async def deliver(self, **payload):
        if self.fail:
            raise NotifyWebhookError("Notify webhook error 502: bad gateway")
        self.sent.append(payload)
        return {}


async def stored(user_id: int) -> list[Notification]:
    async with SessionLocal() as s:
        res = await s.execute(select(Notification).where(Notification.user_id == user_id))
        return list(res.scalars().all())


def test_each_variant_renders_its_own_kind():
    kinds = {
        render(BookingConfirmed(1, 7, "City Hatch", at(10), at(14), 200_000)).kind,
        render(BookingCancelled(1, 7, "City Hatch")).kind,
        render(CouponRedeemed(1, "SAVE10", 200)).kind,
        render(RatingReceived(1, "City Hatch", 5)).kind,
        render(SystemMessage(1, "Maintenance", "Back soon")).kind,
    }
    assert kinds == {
        "booking_confirmation",
        "booking_cancelled",
        "coupon_redeemed",
        "rating_received",
        "system_message",
    }


def test_booking_confirmed_message_carries_amount_and_window():
    r = render(BookingConfirmed(1, 7, "City Hatch", at(10), at(14), 200_000))
    assert "City Hatch" in r.message
    assert "INR 2,000.00" in r.message
    assert "01 Jun 2030 10:00 UTC" in r.message
    assert r.meta == {"booking_id": 7, "amount_cents": 200_000}
    assert r.priority == "high"


def test_unknown_notice_type_is_rejected():
    with pytest.raises(TypeError):
        render(SimpleNamespace(user_id=1))


async def test_dispatch_without_webhook_stores_a_sent_notification(customer):
    await dispatch_notification(CouponRedeemed(customer.id, "SAVE10", 200))

    [n] = await stored(customer.id)
    assert (n.kind, n.status, n.is_read) == ("coupon_redeemed", "sent", False)


async def test_dispatch_posts_to_the_webhook(customer):
    hook = FakeWebhook()
    await dispatch_notification(SystemMessage(customer.id, "Hello", "Welcome aboard"), client=hook)

    [n] = await stored(customer.id)
    assert n.status == "sent"
    assert hook.sent[0]["notification_id"] == n.id
    assert hook.sent[0]["title"] == "Hello"


async def test_webhook_failure_is_recorded_not_raised(customer, caplog):
    with caplog.at_level(logging.WARNING, logger="carrental.services.notifications"):
        await dispatch_notification(BookingCancelled(customer.id, 3, "City Hatch"), client=FakeWebhook(fail=True))

    [n] = await stored(customer.id)
    assert n.status == "failed"
    assert "delivery failed" in caplog.text


async def test_dispatch_never_raises(customer, caplog):
    with caplog.at_level(logging.ERROR, logger="carrental.services.notifications"):
        await dispatch_notification(SimpleNamespace(user_id=customer.id))

    assert await stored(customer.id) == []
    assert "Failed to dispatch" in caplog.text


async def test_inbox_operations(db, customer, other_customer):
    uid = customer.id
    first = await record_notification(db, SystemMessage(uid, "One", "first"))
    await record_notification(db, SystemMessage(uid, "Two", "second"))
    theirs = await record_notification(db, SystemMessage(other_customer.id, "Theirs", "not yours"))

    assert [n.title for n in await list_user_notifications(db, uid)] == ["Two", "One"]
    assert await unread_count(db, uid) == 2

    read = await mark_read(db, notification_id=first.id, user=customer)
    assert read.is_read is True
    assert read.read_at is not None
    assert await unread_count(db, uid) == 1

    assert await mark_all_read(db, uid) == 1
    assert await unread_count(db, uid) == 0
    assert await unread_count(db, other_customer.id) == 1

    with pytest.raises(Forbidden):
        await mark_read(db, notification_id=theirs.id, user=customer)
    with pytest.raises(Forbidden):
        await delete_notification(db, notification_id=theirs.id, user=customer)

    await delete_notification(db, notification_id=first.id, user=customer)
    assert [n.title for n in await list_user_notifications(db, uid)] == ["Two"]
