from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.db import get_db
from carrental.core.deps import get_current_user
from carrental.core.errors import DomainError, to_http
from carrental.models.user import User
from carrental.schemas.notifications import NotificationOut, UnreadCountOut
from carrental.services.notifications import (
    delete_notification,
    list_user_notifications,
    mark_all_read,
    mark_read,
    unread_count,
)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=list[NotificationOut])
async def my_notifications(
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await list_user_notifications(db, int(current_user.id), limit=limit)


@router.get("/unread-count", response_model=UnreadCountOut)
async def my_unread_count(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"unread": await unread_count(db, int(current_user.id))}


@router.post("/read-all")
async def read_all(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    updated = await mark_all_read(db, int(current_user.id))
    return {"message": "All notifications marked as read", "updated": updated}


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def read_one(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await mark_read(db, notification_id=notification_id, user=current_user)
    except DomainError as e:
        raise to_http(e)


@router.delete("/{notification_id}")
async def remove_notification(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        await delete_notification(db, notification_id=notification_id, user=current_user)
    except DomainError as e:
        raise to_http(e)

    return {"message": "Notification deleted"}
