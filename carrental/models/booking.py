from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Float, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carrental.core.clock import now_utc
from carrental.core.db import Base, BigIntPK, UTCDateTime

BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed")
ACTIVE_BOOKING_STATUSES = ("pending", "confirmed")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="bookings_interval_check"),
        CheckConstraint(
            "status IN ('pending','confirmed','cancelled','completed')",
            name="bookings_status_check",
        ),
        CheckConstraint(
            "payment_status IN ('unpaid','paid','refunded')",
            name="bookings_payment_status_check",
        ),
        CheckConstraint("total_amount_cents >= 0", name="bookings_amount_check"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    vehicle_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("vehicles.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)

    starts_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    total_hours: Mapped[float] = mapped_column(Float, nullable=False)
    total_amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default="unpaid")
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False, default="stripe")

    # payment provider's transaction id; unique so a replayed callback can't book twice
    transaction_ref: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)

    has_rated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=now_utc, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=now_utc, server_default=func.now(), onupdate=now_utc
    )

    vehicle = relationship("Vehicle", lazy="selectin")
    user = relationship("User", lazy="selectin")


Index("ix_bookings_user_created", Booking.user_id, Booking.created_at.desc())
Index("ix_bookings_vehicle_status", Booking.vehicle_id, Booking.status)
Index("ix_bookings_window", Booking.starts_at, Booking.ends_at)
