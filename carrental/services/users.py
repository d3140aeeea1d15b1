from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carrental.core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from carrental.core.security import hash_password, verify_password
from carrental.models.user import User

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


async def find_user_by_email(db: AsyncSession, email: str) -> User | None:
    res = await db.execute(select(User).where(User.email == _normalize_email(email)))
    return res.scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


async def _insert_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    full_name: str,
    phone: str | None,
    role: str,
) -> User:
    email = _normalize_email(email)
    if await find_user_by_email(db, email) is not None:
        raise Conflict("User already exists with this email")

    user = User(
        email=email,
        password_hash=hash_password(password),
        full_name=full_name.strip(),
        phone=phone,
        role=role,
        is_active=True,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("User already exists with this email")

    logger.info("Registered %s user %s", role, user.id)
    return user


async def register_user(db: AsyncSession, *, email: str, password: str, full_name: str, phone: str | None) -> User:
    return await _insert_user(db, email=email, password=password, full_name=full_name, phone=phone, role="customer")


async def create_first_admin(
    db: AsyncSession, *, email: str, password: str, full_name: str, phone: str | None
) -> User:
    """Bootstrap: only allowed while the system has no admin at all."""
    res = await db.execute(select(func.count(User.id)).where(User.role == "admin"))
    if int(res.scalar_one()) > 0:
        raise Forbidden("An admin already exists")
    return await _insert_user(db, email=email, password=password, full_name=full_name, phone=phone, role="admin")


async def authenticate(db: AsyncSession, *, email: str, password: str) -> User | None:
    """Returns the user for valid credentials, None otherwise (inactive users included)."""
    user = await find_user_by_email(db, email)
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


async def update_profile(
    db: AsyncSession, user: User, *, full_name: str | None = None, phone: str | None = None
) -> User:
    if full_name is not None:
        user.full_name = full_name.strip()
    if phone is not None:
        user.phone = phone
    await db.commit()
    return user


async def change_password(
    db: AsyncSession,
    user: User,
    *,
    current_password: str,
    new_password: str,
    confirm_new_password: str,
) -> None:
    # 1) confirm match
    if new_password != confirm_new_password:
        raise ValidationFailed("New password and confirmation do not match.")

    # 2) verify current
    if not verify_password(current_password, user.password_hash):
        raise ValidationFailed("Current password is incorrect.")

    # 3) prevent same password
    if verify_password(new_password, user.password_hash):
        raise ValidationFailed("New password must be different from current password.")

    user.password_hash = hash_password(new_password)
    await db.commit()


# -------------------------
# Admin user management
# -------------------------
async def list_users(
    db: AsyncSession,
    *,
    role: str | None = None,
    is_active: bool | None = None,
    q: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[User]:
    stmt = select(User).order_by(User.id.asc())
    if role:
        stmt = stmt.where(User.role == role)
    if is_active is not None:
        stmt = stmt.where(User.is_active.is_(is_active))
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(User.email.ilike(like) | User.full_name.ilike(like))

    res = await db.execute(stmt.limit(limit).offset(offset))
    return list(res.scalars().all())


async def admin_update_user(db: AsyncSession, *, user_id: int, changes: dict, actor: User) -> User:
    user = await get_user(db, user_id)

    if user.id == actor.id and (changes.get("role") == "customer" or changes.get("is_active") is False):
        raise ValidationFailed("Admins cannot demote or deactivate themselves")

    for field in ("full_name", "phone", "role", "is_active"):
        if changes.get(field) is not None:
            setattr(user, field, changes[field])

    await db.commit()
    return user


async def deactivate_user(db: AsyncSession, *, user_id: int, actor: User) -> User:
    return await admin_update_user(db, user_id=user_id, changes={"is_active": False}, actor=actor)
