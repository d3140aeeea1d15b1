from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.db import get_db
from carrental.core.deps import require_admin
from carrental.core.errors import DomainError, to_http
from carrental.models.user import User
from carrental.schemas.notifications import SystemMessageIn
from carrental.schemas.users import AdminUserUpdateIn, UserOut
from carrental.services.notifications import SystemMessage, dispatch_notification
from carrental.services.users import admin_update_user, deactivate_user, get_user, list_users

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users", response_model=list[UserOut])
async def admin_list_users(
    role: Optional[Literal["customer", "admin"]] = None,
    is_active: Optional[bool] = None,
    q: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(require_admin),
):
    return await list_users(db, role=role, is_active=is_active, q=q, limit=limit, offset=offset)


@router.get("/users/{user_id}", response_model=UserOut)
async def admin_get_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(require_admin),
):
    try:
        return await get_user(db, user_id)
    except DomainError as e:
        raise to_http(e)


@router.patch("/users/{user_id}", response_model=UserOut)
async def admin_patch_user(
    user_id: int,
    payload: AdminUserUpdateIn,
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(require_admin),
):
    try:
        return await admin_update_user(
            db,
            user_id=user_id,
            changes=payload.model_dump(exclude_unset=True),
            actor=admin_user,
        )
    except DomainError as e:
        raise to_http(e)


@router.post("/users/{user_id}/deactivate", response_model=UserOut)
async def admin_deactivate_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(require_admin),
):
    try:
        return await deactivate_user(db, user_id=user_id, actor=admin_user)
    except DomainError as e:
        raise to_http(e)


@router.post("/notifications", status_code=202)
async def admin_send_system_message(
    payload: SystemMessageIn,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(require_admin),
):
    try:
        await get_user(db, payload.user_id)
    except DomainError as e:
        raise to_http(e)

    background.add_task(
        dispatch_notification,
        SystemMessage(
            user_id=payload.user_id,
            title=payload.title,
            message=payload.message,
            priority=payload.priority,
        ),
    )
    return {"message": "Notification queued"}
