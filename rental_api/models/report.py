# rental_api/models/report.py
from typing import List, Optional, Dict
from datetime import datetime

from pydantic import BaseModel, Field

from .booking import Booking


class BookingStatusCount(BaseModel):
    status: str
    count: int
    total_revenue: float = 0
    total_penalties: float = 0


class BookingStatsReport(BaseModel):
    """Aggregated booking counts and amounts per status."""
    total_bookings: int
    by_status: List[BookingStatusCount] = Field(default_factory=list)
    total_revenue: float = 0
    total_penalties: float = 0


class MyBookingsResponse(BaseModel):
    bookings: List[Booking.Response]
    stats: Dict[str, int]


class ScheduleResponse(BaseModel):
    view: str
    window_start: datetime
    window_end: datetime
    bookings: List[Booking.Response]


class AvailabilityReport(BaseModel):
    product_id: str
    start_date: datetime
    end_date: datetime
    total_units: int
    committed_units: int
    available_units: int
    is_available: bool
    reason: Optional[str] = None


class BookingConflict(BaseModel):
    booking_id: str
    booking_code: str
    status: str
    unit_count: int
    start_date: datetime
    end_date: datetime


class ConflictReport(BaseModel):
    product_id: str
    start_date: datetime
    end_date: datetime
    conflicts: List[BookingConflict]


class ProductRentalCount(BaseModel):
    product_id: str
    product_name: Optional[str] = "Product Not Found"
    count: int


class DashboardReport(BaseModel):
    """Per-customer summary of bookings and spending."""
    total_bookings: int
    total_amount_spent: float = 0
    active_rentals: int = 0
    late_returns: int = 0
    most_rented_products: List[ProductRentalCount] = Field(default_factory=list)
    recent_bookings: List[Booking.Response] = Field(default_factory=list)


class BookingReport(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: Optional[str] = None
    total_bookings: int
    total_amount: float = 0
    total_penalties: float = 0
    bookings: List[Booking.Response]


class ProductAnalytics(BaseModel):
    product_id: str
    product_name: Optional[str] = "Product Not Found"
    total_rentals: int
    total_spent: float = 0
    average_rental_days: float = 0
    last_rented: Optional[datetime] = None
