# services package

from .billing import RentalBillingEngine
from .occupancy import OccupancyCoordinator
from .reservations import ReservationEngine, price_stay
from .reports import booking_stats, revenue_series

__all__ = ["RentalBillingEngine", "OccupancyCoordinator", "ReservationEngine", "price_stay",
           "booking_stats", "revenue_series"]
