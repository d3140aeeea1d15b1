from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.db import get_db
from carrental.core.errors import DomainError, to_http
from carrental.core.security import TokenError, create_access_token, create_refresh_token, decode_token
from carrental.models.user import User
from carrental.schemas.auth import RefreshIn, RegisterIn, TokenPair
from carrental.schemas.users import UserOut
from carrental.services.users import authenticate, create_first_admin, get_user, register_user

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_pair(user: User) -> dict:
    return {
        "access_token": create_access_token(user_id=user.id, role=user.role),
        "refresh_token": create_refresh_token(user_id=user.id),
        "token_type": "bearer",
    }


@router.post("/register", response_model=UserOut, status_code=201)
async def register(payload: RegisterIn, db: AsyncSession = Depends(get_db)):
    try:
        return await register_user(
            db,
            email=payload.email,
            password=payload.password,
            full_name=payload.full_name,
            phone=payload.phone,
        )
    except DomainError as e:
        raise to_http(e)


@router.post("/first-admin", response_model=UserOut, status_code=201)
async def first_admin(payload: RegisterIn, db: AsyncSession = Depends(get_db)):
    try:
        return await create_first_admin(
            db,
            email=payload.email,
            password=payload.password,
            full_name=payload.full_name,
            phone=payload.phone,
        )
    except DomainError as e:
        raise to_http(e)


@router.post("/login", response_model=TokenPair)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    # OAuth2 form field "username" carries the email
    user = await authenticate(db, email=form_data.username, password=form_data.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    return _token_pair(user)


@router.post("/refresh", response_model=TokenPair)
async def refresh(payload: RefreshIn, db: AsyncSession = Depends(get_db)):
    try:
        claims = decode_token(payload.refresh_token, expected_type="refresh")
        user = await get_user(db, int(claims["sub"]))
    except (TokenError, DomainError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="User is inactive")

    return _token_pair(user)
