# parking_api/models/__init__.py
# Import all models here so SQLAlchemy registers them into Base.metadata.

from parking_api.models.organization import Organization  # noqa: F401
from parking_api.models.user import User  # noqa: F401
from parking_api.models.vehicle import Vehicle  # noqa: F401
from parking_api.models.parking_lot import ParkingLot  # noqa: F401

from parking_api.models.reservation import Reservation, ReservationStatus  # noqa: F401

from parking_api.models.discount import Discount, DiscountType  # noqa: F401
from parking_api.models.discount_usage import DiscountUsage  # noqa: F401
