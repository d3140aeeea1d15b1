from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.db import get_db
from carrental.core.deps import require_admin
from carrental.core.errors import DomainError, to_http
from carrental.models.user import User
from carrental.schemas.dashboard import DashboardSummaryOut
from carrental.services.dashboard import dashboard_summary

router = APIRouter(prefix="/admin/dashboard", tags=["Admin Dashboard"])


@router.get("/summary", response_model=DashboardSummaryOut)
async def admin_dashboard_summary(
    period: str = Query(default="overall"),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
) -> DashboardSummaryOut:
    try:
        data = await dashboard_summary(db, period=period, date_from=date_from, date_to=date_to)
        return DashboardSummaryOut(**data)
    except DomainError as e:
        raise to_http(e)
