# carrental/models/notification.py
from __future__ import annotations

from sqlalchemy import JSON, BigInteger, Boolean, CheckConstraint, Column, ForeignKey, Index, String, func

from carrental.core.clock import now_utc
from carrental.core.db import Base, BigIntPK, UTCDateTime


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        CheckConstraint("status IN ('pending','sent','failed','read')", name="notifications_status_check"),
        CheckConstraint("priority IN ('low','medium','high','urgent')", name="notifications_priority_check"),
    )

    id = Column(BigIntPK, primary_key=True)
    user_id = Column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    kind = Column(String(40), nullable=False)  # e.g. booking_confirmation, booking_cancelled
    channel = Column(String(16), nullable=False, default="in_app")
    title = Column(String(200), nullable=False)
    message = Column(String(1000), nullable=False)

    status = Column(String(16), nullable=False, default="pending")
    priority = Column(String(16), nullable=False, default="medium")
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(UTCDateTime(), nullable=True)

    meta = Column(JSON, nullable=False, default=dict)

    created_at = Column(UTCDateTime(), nullable=False, default=now_utc, server_default=func.now())


Index("ix_notifications_user_created", Notification.user_id, Notification.created_at.desc())
