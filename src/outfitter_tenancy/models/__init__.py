from outfitter_tenancy.models.domain import (
    Booking,
    BookingStatus,
    Customer,
    DashboardStats,
    Experience,
    OutfitterSettings,
)

__all__ = [
    "Booking",
    "BookingStatus",
    "Customer",
    "DashboardStats",
    "Experience",
    "OutfitterSettings",
]
