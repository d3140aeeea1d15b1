from __future__ import annotations

from datetime import datetime
from io import BytesIO
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.clock import now_utc
from carrental.core.config import settings
from carrental.models.booking import Booking
from carrental.models.coupon import Coupon, CouponRedemption
from carrental.models.user import User
from carrental.models.vehicle import Vehicle


def _fmt_dt(dt: Optional[datetime]) -> str:
    if not dt:
        return ""
    return dt.isoformat().replace("+00:00", "Z")


def _money(cents: int) -> str:
    return f"{settings.CURRENCY} {cents / 100.0:,.2f}"


def _build_pdf(
    *,
    title: str,
    subtitle_lines: list[str],
    header: list[str],
    rows: list[list[str]],
) -> bytes:
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=title,
    )

    styles = getSampleStyleSheet()
    story = [Paragraph(f"<b>{title}</b>", styles["Title"]), Spacer(1, 6)]

    for line in subtitle_lines:
        story.append(Paragraph(line, styles["Normal"]))
    story.append(Spacer(1, 10))

    tbl = Table([header] + rows, repeatRows=1)
    tbl.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1f2937")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
                ("LEFTPADDING", (0, 0), (-1, -1), 5),
                ("RIGHTPADDING", (0, 0), (-1, -1), 5),
            ]
        )
    )

    story.append(tbl)
    doc.build(story)
    return buf.getvalue()


async def _booking_discounts(db: AsyncSession, booking_id: int) -> list[tuple[str, int]]:
    res = await db.execute(
        select(Coupon.code, CouponRedemption.discount_cents)
        .select_from(CouponRedemption)
        .join(Coupon, Coupon.id == CouponRedemption.coupon_id)
        .where(CouponRedemption.booking_id == booking_id)
        .order_by(CouponRedemption.id.asc())
    )
    return [(code, int(cents)) for code, cents in res.all()]


async def generate_booking_invoice_pdf(db: AsyncSession, booking: Booking) -> bytes:
    """Single-page invoice for a booking, including any coupon discounts recorded against it."""
    vehicle = await db.get(Vehicle, booking.vehicle_id)
    customer = await db.get(User, booking.user_id)

    subtitle = [
        f"Invoice for booking <b>#{booking.id}</b>",
        f"Customer: <b>{customer.full_name}</b> ({customer.email})",
        f"Vehicle: {vehicle.brand} {vehicle.model} ({vehicle.name})",
        f"Rental: {_fmt_dt(booking.starts_at)} to {_fmt_dt(booking.ends_at)}",
        f"Status: {booking.status} | Payment: {booking.payment_status} via {booking.payment_method}",
        f"Transaction: {booking.transaction_ref}",
        f"Generated at: {_fmt_dt(now_utc())}",
    ]

    header = ["Item", "Hours", "Rate", "Amount"]
    rows = [
        [
            "Vehicle rental",
            f"{booking.total_hours:g}",
            _money(int(vehicle.price_per_hour_cents)),
            _money(int(booking.total_amount_cents)),
        ]
    ]

    discount_total = 0
    for code, cents in await _booking_discounts(db, booking.id):
        discount_total += cents
        rows.append([f"Coupon {code}", "", "", f"-{_money(cents)}"])

    payable = max(int(booking.total_amount_cents) - discount_total, 0)
    rows.append(["Total", "", "", _money(payable)])

    return _build_pdf(
        title="Car Rental Invoice",
        subtitle_lines=subtitle,
        header=header,
        rows=rows,
    )
