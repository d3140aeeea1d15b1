import os
import tempfile
from datetime import datetime, timedelta, timezone

# settings are read at import time, so the environment must be ready first
_TMP_DIR = tempfile.mkdtemp(prefix="carrental-tests-")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(_TMP_DIR, "test.db")
os.environ["JWT_SECRET"] = "test-secret"
os.environ["CURRENCY"] = "INR"
os.environ.pop("NOTIFY_WEBHOOK_URL", None)

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from carrental.core.db import Base, SessionLocal, engine  # noqa: E402
from carrental.core.security import create_access_token, hash_password  # noqa: E402
from carrental.main import app  # noqa: E402
from carrental.models.coupon import Coupon  # noqa: E402
from carrental.models.user import User  # noqa: E402
from carrental.models.vehicle import Vehicle  # noqa: E402

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
async def _schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield


@pytest.fixture
async def db():
    async with SessionLocal() as session:
        yield session


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def make_user(db, *, email: str, role: str = "customer", full_name: str = "Test User") -> User:
    user = User(
        email=email,
        password_hash=hash_password(PASSWORD),
        full_name=full_name,
        phone="9876543210",
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


async def make_vehicle(db, *, name: str = "City Hatch", vehicle_type: str = "economy", **kw) -> Vehicle:
    data = dict(
        name=name,
        brand="Maruti",
        model="Swift",
        year=2022,
        vehicle_type=vehicle_type,
        price_per_hour_cents=50_000,
    )
    data.update(kw)
    vehicle = Vehicle(**data)
    db.add(vehicle)
    await db.commit()
    return vehicle


async def make_coupon(db, *, code: str = "SAVE10", **kw) -> Coupon:
    now = datetime.now(timezone.utc)
    data = dict(
        code=code,
        description="10% off",
        discount_type="percentage",
        discount_value=10,
        min_rental_amount_cents=0,
        max_discount_cents=None,
        valid_from=now - timedelta(days=1),
        valid_until=now + timedelta(days=30),
        usage_limit=None,
        usage_count=0,
        user_limit=1,
        applicable_vehicle_types=["all"],
        is_active=True,
    )
    data.update(kw)
    coupon = Coupon(**data)
    db.add(coupon)
    await db.commit()
    return coupon


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id=user.id, role=user.role)}"}


def at(hour: int, day: int = 1) -> datetime:
    return datetime(2030, 6, day, hour, 0, tzinfo=timezone.utc)


@pytest.fixture
async def customer(db) -> User:
    return await make_user(db, email="customer@example.com")


@pytest.fixture
async def other_customer(db) -> User:
    return await make_user(db, email="other@example.com", full_name="Other User")


@pytest.fixture
async def admin(db) -> User:
    return await make_user(db, email="admin@example.com", role="admin", full_name="Admin User")


@pytest.fixture
async def vehicle(db) -> Vehicle:
    return await make_vehicle(db)
