# rental_api/scheduler/jobs.py
import logging
from datetime import timedelta

from starlette.concurrency import run_in_threadpool

from rental_api.models.booking import Booking
from rental_api.models.common import utcnow
from rental_api.models.enum import BookingStatus
from rental_api.models.settings import get_settings
from rental_api.models.user import User
from rental_api.services.mailer import send_booking_notification

logger = logging.getLogger("scheduler_jobs")


async def mark_late_bookings() -> int:
    """Move picked-up bookings whose end_date has passed to 'late'."""
    now_utc = utcnow()
    logger.info(f"Running mark_late_bookings job at {now_utc}")
    collection = Booking.get_motor_collection()
    # The status filter keeps this from overwriting a concurrent return
    result = await collection.update_many(
        {"status": BookingStatus.PICKED_UP.value, "end_date": {"$lt": now_utc}},
        {"$set": {"status": BookingStatus.LATE.value, "updated_at": now_utc}},
    )
    logger.info(f"mark_late_bookings finished. Marked late: {result.modified_count}")
    return result.modified_count


async def _remind(booking: Booking, subject: str, line: str, field: str) -> bool:
    customer = await User.get(booking.customer_id)
    if customer is None:
        logger.warning(f"Skipping reminder for booking {booking.booking_code}: customer not found")
        return False
    sent = await run_in_threadpool(
        send_booking_notification,
        customer.email,
        subject,
        [f"Hello {customer.first_name},", "", line, f"Booking: {booking.booking_code}"],
    )
    if sent:
        await Booking.get_motor_collection().update_one(
            {"_id": booking.id, field: None}, {"$set": {field: utcnow()}}
        )
    return sent


async def send_booking_reminders() -> int:
    """Email customers whose pickup or return falls inside the configured reminder window."""
    now_utc = utcnow()
    settings = await get_settings()
    pickup_horizon = now_utc + timedelta(hours=settings.notifications.pickup_reminder_hours)
    return_horizon = now_utc + timedelta(hours=settings.notifications.return_reminder_hours)
    sent = 0

    pickups = await Booking.find({
        "status": BookingStatus.RESERVED.value,
        "pickup_reminder_sent_at": None,
        "start_date": {"$gt": now_utc, "$lte": pickup_horizon},
    }).to_list()
    for booking in pickups:
        if await _remind(booking, "Pickup reminder", f"Your rental starts at {booking.start_date:%Y-%m-%d %H:%M} UTC.",
                         "pickup_reminder_sent_at"):
            sent += 1

    returns = await Booking.find({
        "status": BookingStatus.PICKED_UP.value,
        "return_reminder_sent_at": None,
        "end_date": {"$gt": now_utc, "$lte": return_horizon},
    }).to_list()
    for booking in returns:
        if await _remind(booking, "Return reminder", f"Please return your rental by {booking.end_date:%Y-%m-%d %H:%M} UTC.",
                         "return_reminder_sent_at"):
            sent += 1

    logger.info(f"send_booking_reminders finished. Pickups due: {len(pickups)}, returns due: {len(returns)}, sent: {sent}")
    return sent
