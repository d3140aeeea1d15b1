from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carrental.core.clock import now_utc
from carrental.core.db import Base, BigIntPK, UTCDateTime


class Vehicle(Base):
    __tablename__ = "vehicles"
    __table_args__ = (
        CheckConstraint(
            "vehicle_type IN ('economy','sedan','suv','sports','luxury','van')",
            name="vehicles_type_check",
        ),
        CheckConstraint("price_per_hour_cents >= 0", name="vehicles_price_check"),
        CheckConstraint("average_rating >= 0 AND average_rating <= 5", name="vehicles_rating_check"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    brand: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(50), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    vehicle_type: Mapped[str] = mapped_column(String(16), nullable=False, default="sedan")
    price_per_hour_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    seats: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    fuel_type: Mapped[str] = mapped_column(String(16), nullable=False, default="petrol")
    transmission: Mapped[str] = mapped_column(String(16), nullable=False, default="automatic")

    registration_number: Mapped[Optional[str]] = mapped_column(String(32), unique=True, nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    image_url: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # derived from approved ratings, rebuilt by services.ratings
    average_rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_ratings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # bumped by every booking transaction; the write doubles as the per-vehicle lock
    reservation_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=now_utc, server_default=func.now()
    )

    reserved_slots: Mapped[List["VehicleReservedSlot"]] = relationship(
        "VehicleReservedSlot",
        back_populates="vehicle",
        cascade="all, delete-orphan",
        order_by="VehicleReservedSlot.starts_at",
        lazy="selectin",
    )


class VehicleReservedSlot(Base):
    __tablename__ = "vehicle_reserved_slots"
    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="reserved_slots_interval_check"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    vehicle_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("vehicles.id", ondelete="CASCADE"),
        nullable=False,
    )
    booking_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        unique=True,
        nullable=True,
    )

    starts_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    vehicle: Mapped["Vehicle"] = relationship("Vehicle", back_populates="reserved_slots")


Index("ix_reserved_slots_vehicle_window", VehicleReservedSlot.vehicle_id, VehicleReservedSlot.starts_at)
Index("ix_vehicles_type", Vehicle.vehicle_type)
Index("ix_vehicles_available", Vehicle.is_available)
