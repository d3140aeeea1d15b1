# carrental/models/coupon.py
from __future__ import annotations

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from carrental.core.clock import now_utc
from carrental.core.db import Base, BigIntPK, UTCDateTime


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("discount_type IN ('percentage','fixed')", name="coupons_discount_type_check"),
        CheckConstraint("discount_value >= 0", name="coupons_discount_value_check"),
        CheckConstraint(
            "discount_type <> 'percentage' OR discount_value <= 100",
            name="coupons_percentage_range_check",
        ),
        CheckConstraint("valid_until > valid_from", name="coupons_validity_window_check"),
        CheckConstraint("usage_limit IS NULL OR usage_limit >= 1", name="coupons_usage_limit_check"),
        CheckConstraint("usage_count >= 0", name="coupons_usage_count_check"),
        CheckConstraint("user_limit >= 1", name="coupons_user_limit_check"),
    )

    id = Column(BigIntPK, primary_key=True)

    # always stored uppercase
    code = Column(String(20), nullable=False, unique=True)
    description = Column(Text, nullable=False)

    discount_type = Column(String(16), nullable=False)
    # percent for 'percentage', cents for 'fixed'
    discount_value = Column(BigInteger, nullable=False)

    min_rental_amount_cents = Column(BigInteger, nullable=False, default=0)
    max_discount_cents = Column(BigInteger, nullable=True)

    valid_from = Column(UTCDateTime(), nullable=False)
    valid_until = Column(UTCDateTime(), nullable=False)

    usage_limit = Column(Integer, nullable=True)  # NULL = unlimited
    usage_count = Column(Integer, nullable=False, default=0)
    user_limit = Column(Integer, nullable=False, default=1)

    applicable_vehicle_types = Column(JSON, nullable=False, default=lambda: ["all"])

    is_active = Column(Boolean, nullable=False, default=True)
    created_by_user_id = Column(BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(UTCDateTime(), nullable=False, default=now_utc, server_default=func.now())
    updated_at = Column(UTCDateTime(), nullable=False, default=now_utc, server_default=func.now(), onupdate=now_utc)

    redemptions = relationship(
        "CouponRedemption",
        back_populates="coupon",
        cascade="all, delete-orphan",
        order_by="CouponRedemption.used_at",
        lazy="selectin",
    )


class CouponRedemption(Base):
    """Append-only usage record; rows are never updated."""

    __tablename__ = "coupon_redemptions"

    id = Column(BigIntPK, primary_key=True)
    coupon_id = Column(BigInteger, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False)
    booking_id = Column(BigInteger, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True)

    discount_cents = Column(BigInteger, nullable=False, default=0)
    used_at = Column(UTCDateTime(), nullable=False, default=now_utc, server_default=func.now())

    coupon = relationship("Coupon", back_populates="redemptions")


Index("ix_coupons_active_window", Coupon.is_active, Coupon.valid_from, Coupon.valid_until)
Index("ix_coupon_redemptions_coupon_user", CouponRedemption.coupon_id, CouponRedemption.user_id)
Index(
    "uq_coupon_redemptions_coupon_booking",
    CouponRedemption.coupon_id,
    CouponRedemption.booking_id,
    unique=True,
)
