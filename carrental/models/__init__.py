# carrental/models/__init__.py
# Import all models here so SQLAlchemy registers them into Base.metadata.

from carrental.models.user import User  # noqa: F401
from carrental.models.vehicle import Vehicle, VehicleReservedSlot  # noqa: F401
from carrental.models.booking import Booking  # noqa: F401
from carrental.models.coupon import Coupon, CouponRedemption  # noqa: F401
from carrental.models.rating import Rating  # noqa: F401
from carrental.models.notification import Notification  # noqa: F401
