from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.db import get_db
from carrental.core.deps import get_current_user
from carrental.core.errors import DomainError, to_http
from carrental.models.user import User
from carrental.schemas.users import ChangePasswordIn
from carrental.services.users import change_password as change_user_password

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        await change_user_password(
            db,
            current_user,
            current_password=payload.current_password,
            new_password=payload.new_password,
            confirm_new_password=payload.confirm_new_password,
        )
    except DomainError as e:
        raise to_http(e)

    return {"message": "Password changed successfully."}
