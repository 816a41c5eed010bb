# rental_api/api/endpoints/bookings.py
import math
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, status, Path, Body, Query, Request
from loguru import logger
from starlette.concurrency import run_in_threadpool

from rental_api.api.endpoints.products import get_product_or_404, ensure_can_manage
from rental_api.core.availability import (
    check_product_availability,
    find_overlapping_bookings,
    committed_units,
    move_units,
)
from rental_api.core.documents import (
    generate_pickup_document,
    generate_return_document,
    generate_invoice_document,
    document_summary,
)
from rental_api.core.lifecycle import (
    InvalidTransition,
    ensure_transition,
    transition_booking,
    update_while_in_status,
)
from rental_api.core.penalties import (
    calculate_damage_penalty,
    calculate_late_penalty,
    calculate_total_penalty,
    build_settlement,
)
from rental_api.core.pricing import apply_price_rules, select_pricelist, PricingError
from rental_api.core.rate_limiter import limiter, BOOKING_CREATE_LIMIT, LIST_LIMIT
from rental_api.core.security import get_current_active_user, require_admin
from rental_api.core.utils import get_next_sequence_value, format_code, parse_object_id
from rental_api.models.booking import (
    Booking,
    BookingPage,
    GeneratedDocument,
    PickupDetails,
    PricingSnapshot,
    ReturnDetails,
    booking_response,
)
from rental_api.models.common import paginate, utcnow, as_utc
from rental_api.models.enum import BookingStatus, UserRole
from rental_api.models.price_rule import PriceRule
from rental_api.models.pricelist import Pricelist
from rental_api.models.product import Product
from rental_api.models.report import (
    AvailabilityReport,
    BookingConflict,
    BookingStatsReport,
    BookingStatusCount,
    ConflictReport,
    MyBookingsResponse,
    ScheduleResponse,
)
from rental_api.models.settings import get_settings
from rental_api.models.user import User, user_ref
from rental_api.services.mailer import send_booking_notification

router = APIRouter(tags=["Bookings"])

SCHEDULE_VIEWS = {"day": 1, "week": 7, "month": 30}


# --- Helpers ---
async def get_booking_or_404(booking_id: str) -> Booking:
    booking = await Booking.get(parse_object_id(booking_id, "booking ID"))
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Booking '{booking_id}' not found.")
    return booking


async def ensure_can_view(booking: Booking, user: User) -> None:
    if user.role == UserRole.ADMIN or booking.customer_id == user.id:
        return
    if user.role == UserRole.OWNER:
        product = await Product.get(booking.product_id)
        if product and product.owner_id == user.id:
            return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this booking.")


async def scope_query(user: User) -> dict:
    """Admins see every booking, owners their products' bookings and their own, customers their own."""
    if user.role == UserRole.ADMIN:
        return {}
    if user.role == UserRole.OWNER:
        product_ids = [p.id for p in await Product.find({"owner_id": user.id}).to_list()]
        return {"$or": [{"customer_id": user.id}, {"product_id": {"$in": product_ids}}]}
    return {"customer_id": user.id}


async def respond(booking: Booking) -> Booking.Response:
    customer = await User.get(booking.customer_id)
    product = await Product.get(booking.product_id)
    return booking_response(
        booking, customer=user_ref(customer) if customer else None, product_name=product.name if product else None
    )


async def respond_many(bookings: List[Booking]) -> List[Booking.Response]:
    product_ids = list({b.product_id for b in bookings})
    names = {p.id: p.name for p in await Product.find({"_id": {"$in": product_ids}}).to_list()}
    return [booking_response(b, product_name=names.get(b.product_id)) for b in bookings]


def rental_duration(start: datetime, end: datetime) -> Tuple[int, int]:
    """Whole hours (rounded up) and whole days (rounded up) between start and end."""
    hours = math.ceil((as_utc(end) - as_utc(start)).total_seconds() / 3600)
    return hours, math.ceil(hours / 24)


def check_rental_rules(product: Product, duration_hours: int, duration_days: int) -> None:
    if duration_hours < product.rules.min_rental_hours:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Minimum rental period is {product.rules.min_rental_hours} hour(s).",
        )
    if duration_days > product.rules.max_rental_days:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Maximum rental period is {product.rules.max_rental_days} day(s).",
        )


async def price_booking(
    product: Product, customer: User, start: datetime, end: datetime, unit_count: int
) -> Tuple[PricingSnapshot, int, int]:
    duration_hours, duration_days = rental_duration(start, end)
    check_rental_rules(product, duration_hours, duration_days)

    now = utcnow()
    pricelists = await Pricelist.find({
        "target_customer_types": customer.customer_type.value,
        "validity.start_date": {"$lte": now},
        "validity.end_date": {"$gte": now},
    }).to_list()
    pricelist = select_pricelist(pricelists, customer.customer_type, customer.region, now)
    base_rates = pricelist.base_rates if pricelist else product.base_rates

    rules = await PriceRule.find({
        "enabled": True,
        "$or": [{"product_id": product.id}, {"product_id": None}],
    }).to_list()

    start_utc = as_utc(start)
    context = {
        "duration_hours": duration_hours,
        "duration_days": duration_days,
        "unit_count": unit_count,
        "customer_type": customer.customer_type.value,
        "region": customer.region,
        "product_id": str(product.id),
        "category_id": str(product.category_id) if product.category_id else None,
        "start_hour": start_utc.hour,
        "day_of_week": start_utc.strftime("%A").lower(),
        "is_weekend": start_utc.weekday() >= 5,
    }
    try:
        snapshot = apply_price_rules(
            base_rates,
            rules,
            context,
            deposit=product.deposit_amount * unit_count,
            at=now,
            pricelist_id=pricelist.pricelist_id if pricelist else None,
            currency=pricelist.currency if pricelist else "INR",
        )
    except PricingError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return snapshot, duration_hours, duration_days


async def load_bookable_product(product_id: str) -> Product:
    product = await get_product_or_404(product_id)
    if not product.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product is not available for booking.")
    return product


def transition_conflict(booking: Booking, target: BookingStatus) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Booking {booking.booking_code} cannot move from '{booking.status.value}' to '{target.value}'.",
    )


async def notify(user: Optional[User], subject: str, lines: List[str]) -> None:
    if user is None:
        return
    await run_in_threadpool(send_booking_notification, user.email, subject, lines)


# --- Quote and create ---
@router.post("/quote", response_model=PricingSnapshot)
async def quote_booking(quote_in: Booking.Quote = Body(...), current_user: User = Depends(get_current_active_user)):
    """Price a rental without reserving it."""
    product = await load_bookable_product(quote_in.product_id)
    snapshot, _, _ = await price_booking(
        product, current_user, quote_in.start_date, quote_in.end_date, quote_in.unit_count
    )
    return snapshot


@router.post("/create", response_model=Booking.Response, status_code=status.HTTP_201_CREATED)
@limiter.limit(BOOKING_CREATE_LIMIT)
async def create_booking(
    request: Request,
    booking_in: Booking.Create = Body(...),
    current_user: User = Depends(get_current_active_user),
):
    product = await load_bookable_product(booking_in.product_id)
    start, end = as_utc(booking_in.start_date), as_utc(booking_in.end_date)
    if start <= utcnow():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date must be in the future.")

    snapshot, duration_hours, duration_days = await price_booking(
        product, current_user, start, end, booking_in.unit_count
    )

    available, reason, _ = await check_product_availability(product, start, end, booking_in.unit_count)
    if not available:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=reason)

    booking = Booking(
        booking_code=format_code("BK", await get_next_sequence_value("booking")),
        customer_id=current_user.id,
        product_id=product.id,
        unit_count=booking_in.unit_count,
        start_date=start,
        end_date=end,
        duration_hours=duration_hours,
        duration_days=duration_days,
        status=BookingStatus.RESERVED,
        pricing_snapshot=snapshot,
        notes=booking_in.notes,
    )
    await booking.insert()

    # Re-count with this booking included; two racing creates cannot both keep the last unit
    overlapping = await find_overlapping_bookings(product.id, start, end)
    if committed_units(overlapping) > product.total_units:
        await booking.delete()
        logger.warning(f"Booking {booking.booking_code} rolled back: units taken by a concurrent booking.")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Units were booked by another request; try again.")

    logger.info(
        f"Booking {booking.booking_code} created by '{current_user.email}' for product {product.id}: "
        f"{booking.unit_count} unit(s), total {snapshot.total_price}, deposit {snapshot.deposit}."
    )
    await notify(current_user, f"Booking {booking.booking_code} confirmed", [
        f"Hello {current_user.first_name},",
        f"Your booking for {product.name} is reserved.",
        f"From {start:%Y-%m-%d %H:%M} to {end:%Y-%m-%d %H:%M} UTC.",
        f"Total: {snapshot.total_price} {snapshot.currency}. Deposit: {snapshot.deposit} {snapshot.currency}.",
    ])
    return await respond(booking)


# --- Lifecycle transitions ---
@router.post("/{booking_id}/pickup/confirm", response_model=Booking.Response)
async def confirm_pickup(
    booking_id: str = Path(...),
    pickup_in: Optional[Booking.PickupConfirm] = Body(None),
    current_user: User = Depends(get_current_active_user),
):
    """Hand the units to the customer. Only the product owner or an admin can confirm."""
    pickup_in = pickup_in or Booking.PickupConfirm()
    booking = await get_booking_or_404(booking_id)
    product = await get_product_or_404(str(booking.product_id))
    ensure_can_manage(product, current_user)
    try:
        ensure_transition(booking.status, BookingStatus.PICKED_UP)
    except InvalidTransition as e:
        raise transition_conflict(booking, BookingStatus.PICKED_UP) from e

    now = utcnow()
    customer = await User.get(booking.customer_id)
    details = PickupDetails(
        pickup_address=pickup_in.pickup_address, confirmed_at=now, confirmed_by=current_user.id, notes=pickup_in.notes
    )
    document = generate_pickup_document(
        booking, customer, product, pickup_address=pickup_in.pickup_address, notes=pickup_in.notes, now=now
    )

    updated = await transition_booking(
        booking.id, [BookingStatus.RESERVED], BookingStatus.PICKED_UP,
        {"pickup_details": details, "pickup_document": document},
    )
    if updated is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Booking is no longer reserved.")

    await move_units(product.id, booking.unit_count, to_customer=True)
    logger.info(f"Pickup confirmed for booking {booking.booking_code} by '{current_user.email}'.")
    await notify(customer, f"Pickup confirmed for {booking.booking_code}", [document_summary(document)])
    return await respond(await get_booking_or_404(booking_id))


@router.post("/{booking_id}/return/confirm", response_model=Booking.Response)
async def confirm_return(
    booking_id: str = Path(...),
    return_in: Optional[Booking.ReturnConfirm] = Body(None),
    current_user: User = Depends(get_current_active_user),
):
    """Take the units back, compute penalties and settle the deposit."""
    return_in = return_in or Booking.ReturnConfirm()
    booking = await get_booking_or_404(booking_id)
    product = await get_product_or_404(str(booking.product_id))
    ensure_can_manage(product, current_user)
    try:
        ensure_transition(booking.status, BookingStatus.RETURNED)
    except InvalidTransition as e:
        raise transition_conflict(booking, BookingStatus.RETURNED) from e

    now = utcnow()
    returned_at = as_utc(return_in.returned_at) if return_in.returned_at else now
    if returned_at > now:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="returned_at cannot be in the future.")
    if booking.pickup_details and returned_at < as_utc(booking.pickup_details.confirmed_at):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="returned_at cannot be before pickup.")

    settings = await get_settings()
    deposit = booking.pricing_snapshot.deposit
    damage = calculate_damage_penalty(deposit, return_in.condition, settings.penalty)
    late = calculate_late_penalty(booking.end_date, returned_at, deposit, settings.penalty)
    penalties = calculate_total_penalty(damage, late)
    settlement = build_settlement(deposit, penalties.total_penalty)

    customer = await User.get(booking.customer_id)
    details = ReturnDetails(
        drop_address=return_in.drop_address,
        returned_at=returned_at,
        returned_by=current_user.id,
        condition=return_in.condition,
        notes=return_in.notes,
    )
    document = generate_return_document(booking, details, penalties, settlement, customer, product, now=now)

    updated = await transition_booking(
        booking.id, [BookingStatus.PICKED_UP, BookingStatus.LATE], BookingStatus.RETURNED,
        {
            "return_details": details,
            "return_document": document,
            "penalties": penalties,
            "settlement": settlement,
        },
    )
    if updated is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Booking is not currently picked up.")

    await move_units(product.id, booking.unit_count, to_customer=False)
    logger.info(
        f"Return confirmed for booking {booking.booking_code}: penalty {penalties.total_penalty}, "
        f"refund {settlement.refund_amount}, outstanding {settlement.outstanding_amount}."
    )
    await notify(customer, f"Return confirmed for {booking.booking_code}", [
        document_summary(document),
        f"Penalties: {penalties.total_penalty}. Refund: {settlement.refund_amount}.",
    ])
    return await respond(await get_booking_or_404(booking_id))


@router.patch("/{booking_id}/cancel", response_model=Booking.Response)
async def cancel_booking(
    booking_id: str = Path(...),
    cancel_in: Optional[Booking.Cancel] = Body(None),
    current_user: User = Depends(get_current_active_user),
):
    cancel_in = cancel_in or Booking.Cancel()
    booking = await get_booking_or_404(booking_id)
    if current_user.role != UserRole.ADMIN and booking.customer_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the customer or an admin can cancel.")
    try:
        ensure_transition(booking.status, BookingStatus.CANCELLED)
    except InvalidTransition as e:
        raise transition_conflict(booking, BookingStatus.CANCELLED) from e

    updated = await transition_booking(
        booking.id, [BookingStatus.RESERVED], BookingStatus.CANCELLED,
        {"cancellation_reason": cancel_in.reason, "cancelled_at": utcnow()},
    )
    if updated is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Booking is no longer reserved.")
    logger.info(f"Booking {booking.booking_code} cancelled by '{current_user.email}'.")
    return await respond(await get_booking_or_404(booking_id))


@router.patch("/{booking_id}/update", response_model=Booking.Response)
async def update_booking(
    booking_id: str = Path(...),
    update_in: Booking.Update = Body(...),
    current_user: User = Depends(get_current_active_user),
):
    """Change dates, units or notes of a reserved booking. New windows are re-checked and re-priced."""
    booking = await get_booking_or_404(booking_id)
    if current_user.role != UserRole.ADMIN and booking.customer_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the customer or an admin can update.")
    if booking.status != BookingStatus.RESERVED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Booking {booking.booking_code} is '{booking.status.value}'; only reserved bookings can be updated.",
        )
    changes = update_in.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No update data provided.")

    start = as_utc(update_in.start_date or booking.start_date)
    end = as_utc(update_in.end_date or booking.end_date)
    units = update_in.unit_count or booking.unit_count
    if end <= start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_date must be after start_date")

    fields = {"notes": update_in.notes} if "notes" in changes else {}
    previous = {}
    rebooked = (start, end, units) != (as_utc(booking.start_date), as_utc(booking.end_date), booking.unit_count)
    if rebooked:
        if start <= utcnow():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date must be in the future.")
        product = await load_bookable_product(str(booking.product_id))
        customer = await User.get(booking.customer_id) or current_user
        snapshot, duration_hours, duration_days = await price_booking(product, customer, start, end, units)
        available, reason, _ = await check_product_availability(
            product, start, end, units, exclude_booking_id=booking.id
        )
        if not available:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=reason)
        fields.update({
            "start_date": start,
            "end_date": end,
            "unit_count": units,
            "duration_hours": duration_hours,
            "duration_days": duration_days,
            "pricing_snapshot": snapshot,
        })
        previous = {key: getattr(booking, key) for key in fields if key != "notes"}

    updated = await update_while_in_status(booking.id, [BookingStatus.RESERVED], fields)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Booking is no longer reserved.")

    if rebooked:
        overlapping = await find_overlapping_bookings(product.id, start, end)
        if committed_units(overlapping) > product.total_units:
            await update_while_in_status(booking.id, [BookingStatus.RESERVED], previous)
            logger.warning(f"Update of booking {booking.booking_code} rolled back: units taken by a concurrent booking.")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Units were booked by another request; try again.")

    logger.info(f"Booking {booking.booking_code} updated by '{current_user.email}': {sorted(changes)}.")
    return await respond(await get_booking_or_404(booking_id))


# --- Reads ---
@router.get("", response_model=BookingPage)
@limiter.limit(LIST_LIMIT)
async def list_bookings(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_active_user),
):
    query = await scope_query(current_user)
    if booking_status:
        query["status"] = booking_status.value
    total = await Booking.find(query).count()
    bookings = await Booking.find(query).sort("-created_at").skip((page - 1) * limit).limit(limit).to_list()
    return BookingPage(bookings=await respond_many(bookings), pagination=paginate(page, limit, total))


@router.get("/my", response_model=MyBookingsResponse)
@limiter.limit(LIST_LIMIT)
async def my_bookings(request: Request, current_user: User = Depends(get_current_active_user)):
    bookings = await Booking.find({"customer_id": current_user.id}).sort("-created_at").to_list()
    stats = {s.value: 0 for s in BookingStatus}
    for b in bookings:
        stats[b.status.value] += 1
    stats["total"] = len(bookings)
    return MyBookingsResponse(bookings=await respond_many(bookings), stats=stats)


@router.get("/stats", response_model=BookingStatsReport)
async def booking_stats(current_user: User = Depends(require_admin)):
    pipeline = [
        {"$group": {
            "_id": "$status",
            "count": {"$sum": 1},
            "total_revenue": {"$sum": "$pricing_snapshot.total_price"},
            "total_penalties": {"$sum": {"$ifNull": ["$penalties.total_penalty", 0]}},
        }},
        {"$sort": {"_id": 1}},
    ]
    rows = await Booking.get_motor_collection().aggregate(pipeline).to_list(length=None)
    by_status = [
        BookingStatusCount(
            status=row["_id"], count=row["count"],
            total_revenue=round(row["total_revenue"], 2), total_penalties=round(row["total_penalties"], 2),
        )
        for row in rows
    ]
    # Cancelled bookings never produce revenue
    revenue = sum(r.total_revenue for r in by_status if r.status != BookingStatus.CANCELLED.value)
    return BookingStatsReport(
        total_bookings=sum(r.count for r in by_status),
        by_status=by_status,
        total_revenue=round(revenue, 2),
        total_penalties=round(sum(r.total_penalties for r in by_status), 2),
    )


@router.get("/schedule", response_model=ScheduleResponse)
async def booking_schedule(
    view: str = Query("week", pattern="^(day|week|month)$"),
    date: Optional[datetime] = Query(None, description="Start of the window; defaults to now"),
    current_user: User = Depends(get_current_active_user),
):
    """Bookings overlapping a day, week or month window."""
    window_start = as_utc(date) if date else utcnow()
    window_end = window_start + timedelta(days=SCHEDULE_VIEWS[view])
    query = await scope_query(current_user)
    query.update({
        "status": {"$ne": BookingStatus.CANCELLED.value},
        "start_date": {"$lt": window_end},
        "end_date": {"$gt": window_start},
    })
    bookings = await Booking.find(query).sort("+start_date").to_list()
    return ScheduleResponse(
        view=view, window_start=window_start, window_end=window_end, bookings=await respond_many(bookings)
    )


@router.get("/availability", response_model=AvailabilityReport)
async def product_availability(
    product_id: str = Query(...),
    start_date: datetime = Query(...),
    end_date: datetime = Query(...),
    units: int = Query(1, ge=1),
    current_user: User = Depends(get_current_active_user),
):
    if as_utc(end_date) <= as_utc(start_date):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_date must be after start_date")
    product = await get_product_or_404(product_id)
    available, reason, committed = await check_product_availability(product, start_date, end_date, units)
    return AvailabilityReport(
        product_id=product_id,
        start_date=start_date,
        end_date=end_date,
        total_units=product.total_units,
        committed_units=committed,
        available_units=max(0, product.total_units - committed),
        is_available=available,
        reason=reason,
    )


@router.get("/conflicts", response_model=ConflictReport)
async def booking_conflicts(
    product_id: str = Query(...),
    start_date: datetime = Query(...),
    end_date: datetime = Query(...),
    current_user: User = Depends(get_current_active_user),
):
    product = await get_product_or_404(product_id)
    overlapping = await find_overlapping_bookings(product.id, as_utc(start_date), as_utc(end_date))
    return ConflictReport(
        product_id=product_id,
        start_date=start_date,
        end_date=end_date,
        conflicts=[
            BookingConflict(
                booking_id=str(b.id), booking_code=b.booking_code, status=b.status.value,
                unit_count=b.unit_count, start_date=b.start_date, end_date=b.end_date,
            )
            for b in overlapping
        ],
    )


@router.get("/stage/{stage}", response_model=List[Booking.Response])
@limiter.limit(LIST_LIMIT)
async def bookings_by_stage(
    request: Request,
    stage: BookingStatus = Path(...),
    current_user: User = Depends(get_current_active_user),
):
    query = await scope_query(current_user)
    query["status"] = stage.value
    bookings = await Booking.find(query).sort("+start_date").to_list()
    return await respond_many(bookings)


@router.get("/{booking_id}", response_model=Booking.Response)
async def read_booking(booking_id: str = Path(...), current_user: User = Depends(get_current_active_user)):
    booking = await get_booking_or_404(booking_id)
    await ensure_can_view(booking, current_user)
    return await respond(booking)


@router.get("/{booking_id}/invoice", response_model=GeneratedDocument)
async def booking_invoice(booking_id: str = Path(...), current_user: User = Depends(get_current_active_user)):
    booking = await get_booking_or_404(booking_id)
    await ensure_can_view(booking, current_user)
    customer = await User.get(booking.customer_id)
    product = await Product.get(booking.product_id)
    return generate_invoice_document(booking, customer, product)
