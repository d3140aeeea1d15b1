from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel


class DashboardSummaryOut(BaseModel):
    period: str
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    total_users: int
    total_vehicles: int
    available_vehicles: int
    total_bookings: int
    bookings_by_status: Dict[str, int]
    revenue_cents: int
    coupon_redemptions: int
    currency: str
