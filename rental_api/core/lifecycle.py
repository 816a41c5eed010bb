# rental_api/core/lifecycle.py
import logging
from typing import Any, Dict, Iterable, Optional

from beanie import PydanticObjectId
from beanie.odm.utils.encoder import Encoder
from pymongo import ReturnDocument

from rental_api.models.booking import Booking
from rental_api.models.common import utcnow
from rental_api.models.enum import BookingStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    BookingStatus.RESERVED: {BookingStatus.PICKED_UP, BookingStatus.CANCELLED},
    BookingStatus.PICKED_UP: {BookingStatus.LATE, BookingStatus.RETURNED},
    BookingStatus.LATE: {BookingStatus.RETURNED},
    BookingStatus.RETURNED: set(),
    BookingStatus.CANCELLED: set(),
}

# Bookings in these states hold units for their window
ACTIVE_STATUSES = [BookingStatus.RESERVED, BookingStatus.PICKED_UP, BookingStatus.LATE]


class InvalidTransition(Exception):
    def __init__(self, current: BookingStatus, target: BookingStatus):
        self.current = BookingStatus(current)
        self.target = BookingStatus(target)
        super().__init__(f"Cannot move booking from '{self.current.value}' to '{self.target.value}'")


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return BookingStatus(target) in ALLOWED_TRANSITIONS[BookingStatus(current)]


def ensure_transition(current: BookingStatus, target: BookingStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(current, target)


def sources_for(target: BookingStatus) -> list:
    """Statuses from which `target` can be reached."""
    return [s for s, targets in ALLOWED_TRANSITIONS.items() if BookingStatus(target) in targets]


async def transition_booking(
    booking_id: PydanticObjectId,
    from_statuses: Iterable[BookingStatus],
    target: BookingStatus,
    update: Optional[Dict[str, Any]] = None,
) -> Optional[dict]:
    """
    Atomically move a booking to `target` if it is still in one of `from_statuses`.
    Returns the updated raw document, or None when the booking is missing or
    another request changed its status first.
    """
    from_statuses = [BookingStatus(s) for s in from_statuses]
    for source in from_statuses:
        ensure_transition(source, target)

    fields = Encoder().encode(dict(update or {}))
    fields["status"] = BookingStatus(target).value
    fields["updated_at"] = utcnow()

    collection = Booking.get_motor_collection()
    updated = await collection.find_one_and_update(
        {"_id": booking_id, "status": {"$in": [s.value for s in from_statuses]}},
        {"$set": fields},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        logger.info(f"Transition of booking {booking_id} to '{fields['status']}' rejected by status guard.")
    else:
        logger.info(f"Booking {booking_id} moved to '{fields['status']}'.")
    return updated


async def update_while_in_status(
    booking_id: PydanticObjectId,
    statuses: Iterable[BookingStatus],
    update: Dict[str, Any],
) -> Optional[dict]:
    """Set fields on a booking only while its status is one of `statuses`. None when the guard fails."""
    fields = Encoder().encode(dict(update))
    fields["updated_at"] = utcnow()
    return await Booking.get_motor_collection().find_one_and_update(
        {"_id": booking_id, "status": {"$in": [BookingStatus(s).value for s in statuses]}},
        {"$set": fields},
        return_document=ReturnDocument.AFTER,
    )
