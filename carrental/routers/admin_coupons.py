# carrental/routers/admin_coupons.py
from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.db import get_db
from carrental.core.deps import require_admin
from carrental.schemas.coupons import (
    CouponAdminOut,
    CouponCreateIn,
    CouponListOut,
    CouponStatsOut,
    CouponUpdateIn,
)
from carrental.services.coupons import (
    admin_create_coupon,
    admin_delete_coupon,
    admin_get_coupon,
    admin_list_coupons,
    admin_update_coupon,
    coupon_stats,
)

router = APIRouter(prefix="/admin/coupons", tags=["Admin - Coupons"])


@router.post("", response_model=CouponAdminOut, status_code=201)
async def create_coupon(
    body: CouponCreateIn,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    return await admin_create_coupon(db, body=body, created_by_user_id=admin_user.id)


@router.get("", response_model=CouponListOut)
async def list_coupons(
    is_active: Optional[bool] = None,
    discount_type: Optional[Literal["percentage", "fixed"]] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    return await admin_list_coupons(db, is_active=is_active, discount_type=discount_type, page=page, limit=limit)


@router.get("/stats", response_model=CouponStatsOut)
async def stats(
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    return await coupon_stats(db)


@router.get("/{coupon_id}", response_model=CouponAdminOut)
async def get_coupon(
    coupon_id: int,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    return await admin_get_coupon(db, coupon_id)


@router.patch("/{coupon_id}", response_model=CouponAdminOut)
async def update_coupon(
    coupon_id: int,
    body: CouponUpdateIn,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    return await admin_update_coupon(db, coupon_id=coupon_id, body=body)


@router.delete("/{coupon_id}")
async def delete_coupon(
    coupon_id: int,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    await admin_delete_coupon(db, coupon_id)
    return {"message": "Coupon deleted successfully"}
