# rental_api/core/availability.py
import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from beanie import PydanticObjectId

from rental_api.core.lifecycle import ACTIVE_STATUSES
from rental_api.models.booking import Booking
from rental_api.models.common import as_utc
from rental_api.models.product import Product

logger = logging.getLogger(__name__)


def windows_overlap(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return as_utc(start) < as_utc(other_end) and as_utc(end) > as_utc(other_start)


def committed_units(bookings: Iterable) -> int:
    return sum(b.unit_count for b in bookings)


def blocking_reason(product, start: datetime, end: datetime, units: int, overlapping: Iterable) -> Optional[str]:
    """
    Why `units` of `product` cannot be booked for [start, end), or None when they can.
    `overlapping` holds the active bookings that share the window.
    """
    if not product.is_active:
        return "Product is not active"
    if units <= 0:
        return "Unit count must be positive"
    for block in product.availability_blocks:
        if windows_overlap(start, end, block.start_date, block.end_date):
            return f"Product is blocked for this period: {block.reason}"
    committed = committed_units(overlapping)
    if committed + units > product.total_units:
        free = max(0, product.total_units - committed)
        return f"Only {free} of {product.total_units} unit(s) available for this period"
    return None


async def find_overlapping_bookings(
    product_id: PydanticObjectId,
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[PydanticObjectId] = None,
) -> List[Booking]:
    query = {
        "product_id": product_id,
        "status": {"$in": [s.value for s in ACTIVE_STATUSES]},
        "start_date": {"$lt": end},
        "end_date": {"$gt": start},
    }
    if exclude_booking_id:
        query["_id"] = {"$ne": exclude_booking_id}
    return await Booking.find(query).to_list()


async def check_product_availability(
    product: Product,
    start: datetime,
    end: datetime,
    units: int,
    exclude_booking_id: Optional[PydanticObjectId] = None,
) -> Tuple[bool, Optional[str], int]:
    """
    Returns (is_available, reason, committed_units) for booking `units` of the
    product over [start, end).
    """
    overlapping = await find_overlapping_bookings(product.id, start, end, exclude_booking_id)
    reason = blocking_reason(product, start, end, units, overlapping)
    committed = committed_units(overlapping)

    logger.info(
        f"Availability check for {units} unit(s) of product {product.id} [{start} - {end}]: "
        f"total={product.total_units}, committed={committed}, available={reason is None}"
    )
    return reason is None, reason, committed


async def move_units(product_id: PydanticObjectId, units: int, to_customer: bool) -> None:
    """
    Shift units between the available pool and the with-customer pool in one
    update. Both counters stay within [0, total_units].
    """
    if to_customer:
        source, target = "units_available", "units_with_customer"
    else:
        source, target = "units_with_customer", "units_available"
    await Product.get_motor_collection().update_one(
        {"_id": product_id},
        [{"$set": {
            source: {"$max": [0, {"$subtract": [f"${source}", units]}]},
            target: {"$min": ["$total_units", {"$add": [f"${target}", units]}]},
            "updated_at": "$$NOW",
        }}],
    )
    logger.info(f"Moved {units} unit(s) of product {product_id} from {source} to {target}.")
