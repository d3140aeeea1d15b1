from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.db import get_db
from carrental.core.deps import get_current_user
from carrental.models.user import User
from carrental.schemas.users import ProfileUpdateIn, UserOut
from carrental.services.users import update_profile

router = APIRouter(tags=["Me"])


@router.get("/me", response_model=UserOut)
async def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.patch("/me", response_model=UserOut)
async def update_me(
    payload: ProfileUpdateIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await update_profile(db, current_user, full_name=payload.full_name, phone=payload.phone)
