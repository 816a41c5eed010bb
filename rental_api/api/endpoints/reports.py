# rental_api/api/endpoints/reports.py
from collections import Counter
from datetime import datetime
from typing import List, Optional

from beanie import PydanticObjectId
from fastapi import APIRouter, Depends, HTTPException, status, Query
from loguru import logger

from rental_api.core.security import get_current_active_user
from rental_api.core.utils import parse_object_id
from rental_api.models.booking import Booking, booking_response
from rental_api.models.common import as_utc, utcnow
from rental_api.models.enum import BookingStatus, UserRole
from rental_api.models.product import Product
from rental_api.models.report import (
    BookingReport,
    DashboardReport,
    ProductAnalytics,
    ProductRentalCount,
)
from rental_api.models.user import User

router = APIRouter(tags=["Reports"])

RECENT_BOOKINGS = 10
TOP_PRODUCTS = 5


def report_subject(user_id: Optional[str], current_user: User) -> PydanticObjectId:
    """Customers see their own reports; admins may ask for anyone's."""
    if user_id is None:
        return current_user.id
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can view other users' reports.")
    return parse_object_id(user_id, "user ID")


async def product_names(product_ids) -> dict:
    products = await Product.find({"_id": {"$in": list(product_ids)}}).to_list()
    return {p.id: p.name for p in products}


@router.get("/dashboard", response_model=DashboardReport)
async def dashboard(
    user_id: Optional[str] = Query(None, description="Admins only: report for this user"),
    current_user: User = Depends(get_current_active_user),
):
    customer_id = report_subject(user_id, current_user)
    bookings = await Booking.find({"customer_id": customer_id}).sort("-created_at").to_list()
    now = utcnow()

    spent = sum(b.pricing_snapshot.total_price for b in bookings if b.status != BookingStatus.CANCELLED)
    active = [b for b in bookings if b.status in (BookingStatus.PICKED_UP, BookingStatus.LATE)]
    # Late means still out past end_date, whether or not the scheduler has flagged it yet
    late = [b for b in active if as_utc(b.end_date) < now]

    counts = Counter(b.product_id for b in bookings if b.status != BookingStatus.CANCELLED)
    top = counts.most_common(TOP_PRODUCTS)
    recent = bookings[:RECENT_BOOKINGS]
    names = await product_names({pid for pid, _ in top} | {b.product_id for b in recent})

    return DashboardReport(
        total_bookings=len(bookings),
        total_amount_spent=round(spent, 2),
        active_rentals=len(active),
        late_returns=len(late),
        most_rented_products=[
            ProductRentalCount(product_id=str(pid), product_name=names.get(pid, "Product Not Found"), count=count)
            for pid, count in top
        ],
        recent_bookings=[booking_response(b, product_name=names.get(b.product_id)) for b in recent],
    )


@router.get("/bookings", response_model=BookingReport)
async def booking_report(
    start_date: Optional[datetime] = Query(None, description="Bookings created on or after (ISO format)"),
    end_date: Optional[datetime] = Query(None, description="Bookings created on or before (ISO format)"),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    user_id: Optional[str] = Query(None, description="Admins only: report for this user"),
    current_user: User = Depends(get_current_active_user),
):
    customer_id = report_subject(user_id, current_user)
    query = {"customer_id": customer_id}
    created = {}
    if start_date:
        created["$gte"] = as_utc(start_date)
    if end_date:
        created["$lte"] = as_utc(end_date)
    if created:
        query["created_at"] = created
    if booking_status:
        query["status"] = booking_status.value

    bookings = await Booking.find(query).sort("-created_at").to_list()
    names = await product_names({b.product_id for b in bookings})
    return BookingReport(
        start_date=start_date,
        end_date=end_date,
        status=booking_status.value if booking_status else None,
        total_bookings=len(bookings),
        total_amount=round(sum(b.pricing_snapshot.total_price for b in bookings), 2),
        total_penalties=round(sum(b.penalties.total_penalty for b in bookings if b.penalties), 2),
        bookings=[booking_response(b, product_name=names.get(b.product_id)) for b in bookings],
    )


@router.get("/products", response_model=List[ProductAnalytics])
async def product_analytics(
    user_id: Optional[str] = Query(None, description="Admins only: report for this user"),
    current_user: User = Depends(get_current_active_user),
):
    """Rentals per product for one customer, most rented first."""
    customer_id = report_subject(user_id, current_user)
    pipeline = [
        {"$match": {"customer_id": customer_id, "status": {"$ne": BookingStatus.CANCELLED.value}}},
        {"$group": {
            "_id": "$product_id",
            "total_rentals": {"$sum": 1},
            "total_spent": {"$sum": "$pricing_snapshot.total_price"},
            "average_rental_days": {"$avg": "$duration_days"},
            "last_rented": {"$max": "$start_date"},
        }},
        {"$sort": {"total_rentals": -1}},
    ]
    rows = await Booking.get_motor_collection().aggregate(pipeline).to_list(length=None)
    names = await product_names(row["_id"] for row in rows)
    logger.debug(f"Product analytics for {customer_id}: {len(rows)} product(s).")
    return [
        ProductAnalytics(
            product_id=str(row["_id"]),
            product_name=names.get(row["_id"], "Product Not Found"),
            total_rentals=row["total_rentals"],
            total_spent=round(row["total_spent"], 2),
            average_rental_days=round(row["average_rental_days"] or 0, 1),
            last_rented=row["last_rented"],
        )
        for row in rows
    ]
