import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# IMPORTANT:
# This imports ALL models so SQLAlchemy registers tables + FKs correctly
import carrental.models  # noqa: F401
from carrental.core.config import settings
from carrental.core.db import Base, engine
from carrental.core.logging_setup import configure_logging

# Routers
from carrental.routers.auth import router as auth_router
from carrental.routers.auth_change_password import router as auth_change_password_router
from carrental.routers.me import router as me_router
from carrental.routers.admin import router as admin_router
from carrental.routers.admin_dashboard import router as admin_dashboard_router

from carrental.routers.vehicles import router as vehicles_router
from carrental.routers.vehicles import admin_router as admin_vehicles_router

from carrental.routers.bookings import router as bookings_router
from carrental.routers.bookings import admin_router as admin_bookings_router

from carrental.routers.coupons import router as coupons_router
from carrental.routers.admin_coupons import router as admin_coupons_router

from carrental.routers.ratings import router as ratings_router
from carrental.routers.notifications import router as notifications_router

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DB_CREATE_ALL:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")
    yield
    await engine.dispose()


app = FastAPI(title="Car Rental API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Auth & users
app.include_router(auth_router)
app.include_router(auth_change_password_router)
app.include_router(me_router)
app.include_router(admin_router)
app.include_router(admin_dashboard_router)

# Vehicles
app.include_router(vehicles_router)
app.include_router(admin_vehicles_router)

# Bookings
app.include_router(bookings_router)
app.include_router(admin_bookings_router)

# Coupons
app.include_router(coupons_router)
app.include_router(admin_coupons_router)

# Ratings & notifications
app.include_router(ratings_router)
app.include_router(notifications_router)


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
