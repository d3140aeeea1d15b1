from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.db import get_db
from carrental.core.deps import get_current_user
from carrental.core.errors import DomainError, to_http
from carrental.models.user import User
from carrental.schemas.ratings import RatingCreateIn, RatingListOut, RatingOut, RatingUpdateIn
from carrental.services.notifications import RatingReceived, dispatch_notification
from carrental.services.ratings import create_rating, delete_rating, list_user_ratings, update_rating
from carrental.services.vehicles import find_vehicle_by_id

router = APIRouter(prefix="/ratings", tags=["Ratings"])


@router.post("", response_model=RatingOut, status_code=201)
async def rate_booking(
    body: RatingCreateIn,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        rating = await create_rating(
            db,
            booking_id=body.booking_id,
            user=current_user,
            score=body.score,
            review=body.review,
        )
    except DomainError as e:
        raise to_http(e)

    vehicle = await find_vehicle_by_id(db, rating.vehicle_id)
    background.add_task(
        dispatch_notification,
        RatingReceived(
            user_id=int(current_user.id),
            vehicle_name=vehicle.name if vehicle else f"vehicle #{rating.vehicle_id}",
            score=int(rating.score),
        ),
    )
    return rating


@router.get("/mine", response_model=RatingListOut)
async def my_ratings(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items = await list_user_ratings(db, int(current_user.id))
    return {"count": len(items), "items": items}


@router.patch("/{rating_id}", response_model=RatingOut)
async def edit_rating(
    rating_id: int,
    body: RatingUpdateIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await update_rating(
            db,
            rating_id=rating_id,
            user=current_user,
            score=body.score,
            review=body.review,
        )
    except DomainError as e:
        raise to_http(e)


@router.delete("/{rating_id}")
async def remove_rating(
    rating_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        await delete_rating(db, rating_id=rating_id, user=current_user)
    except DomainError as e:
        raise to_http(e)

    return {"message": "Rating deleted successfully"}
