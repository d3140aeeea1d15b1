from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.db import get_db
from carrental.core.deps import require_admin
from carrental.models.user import User
from carrental.schemas.ratings import RatingListOut, RatingSummaryOut
from carrental.schemas.vehicles import VehicleCreate, VehicleOut, VehicleUpdate
from carrental.services.ratings import list_vehicle_ratings, vehicle_rating_summary
from carrental.services.vehicles import create_vehicle, delete_vehicle, get_vehicle, list_vehicles, update_vehicle

router = APIRouter(prefix="/vehicles", tags=["Vehicles"])
admin_router = APIRouter(prefix="/admin/vehicles", tags=["Admin - Vehicles"])


@router.get("", response_model=list[VehicleOut])
async def vehicles_list(
    vehicle_type: Optional[str] = Query(default=None, alias="type"),
    available: Optional[bool] = None,
    min_price_cents: Optional[int] = Query(default=None, ge=0),
    max_price_cents: Optional[int] = Query(default=None, ge=0),
    search: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await list_vehicles(
        db,
        vehicle_type=vehicle_type,
        available=available,
        min_price_cents=min_price_cents,
        max_price_cents=max_price_cents,
        search=search,
        limit=limit,
        offset=offset,
    )


@router.get("/{vehicle_id}", response_model=VehicleOut)
async def vehicle_detail(vehicle_id: int, db: AsyncSession = Depends(get_db)):
    return await get_vehicle(db, vehicle_id)


@router.get("/{vehicle_id}/ratings", response_model=RatingListOut)
async def vehicle_ratings(vehicle_id: int, db: AsyncSession = Depends(get_db)):
    await get_vehicle(db, vehicle_id)
    items = await list_vehicle_ratings(db, vehicle_id)
    return {"count": len(items), "items": items}


@router.get("/{vehicle_id}/ratings/summary", response_model=RatingSummaryOut)
async def vehicle_ratings_summary(vehicle_id: int, db: AsyncSession = Depends(get_db)):
    await get_vehicle(db, vehicle_id)
    return await vehicle_rating_summary(db, vehicle_id)


@admin_router.post("", response_model=VehicleOut, status_code=201)
async def admin_create_vehicle(
    body: VehicleCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    return await create_vehicle(db, body)


@admin_router.patch("/{vehicle_id}", response_model=VehicleOut)
async def admin_update_vehicle(
    vehicle_id: int,
    body: VehicleUpdate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    return await update_vehicle(db, vehicle_id, body)


@admin_router.delete("/{vehicle_id}")
async def admin_delete_vehicle(
    vehicle_id: int,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    await delete_vehicle(db, vehicle_id)
    return {"message": "Vehicle deleted successfully"}
