# rental_api/models/booking.py
from typing import Optional, List, Dict, Any
from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import BaseModel, Field, model_validator
from pymongo import IndexModel, ASCENDING, DESCENDING

from .common import Address, BaseRates, Pagination, utcnow, as_utc
from .enum import BookingStatus, ReturnCondition, SettlementStatus
from .user import UserRefSimple


class AppliedRule(BaseModel):
    rule_id: str
    summary: str


class PricingSnapshot(BaseModel):
    """Price computed at booking time. Later rule or pricelist edits do not change it."""
    base_rates: BaseRates
    applied_pricelist_id: Optional[str] = None
    applied_rules: List[AppliedRule] = Field(default_factory=list)
    subtotal: float = 0
    discount_amount: float = 0
    surcharge_amount: float = 0
    deposit: float
    total_price: float
    currency: str = "INR"


class PenaltyDetail(BaseModel):
    amount: float = 0
    reason: str = "None"


class Penalties(BaseModel):
    damage_penalty: PenaltyDetail = Field(default_factory=PenaltyDetail)
    late_penalty: PenaltyDetail = Field(default_factory=PenaltyDetail)
    total_penalty: float = 0


class Settlement(BaseModel):
    original_deposit: float
    penalties_deducted: float
    refund_amount: float
    outstanding_amount: float = 0
    status: SettlementStatus


class GeneratedDocument(BaseModel):
    document_id: str
    generated_at: datetime
    document_url: str
    document_content: Dict[str, Any] = Field(default_factory=dict)


class PickupDetails(BaseModel):
    pickup_address: Optional[Address] = None
    confirmed_at: datetime
    confirmed_by: Optional[PydanticObjectId] = None
    notes: Optional[str] = None


class ReturnDetails(BaseModel):
    drop_address: Optional[Address] = None
    returned_at: datetime
    returned_by: Optional[PydanticObjectId] = None
    condition: ReturnCondition
    notes: Optional[str] = None


class Booking(Document):
    booking_code: str
    customer_id: PydanticObjectId
    product_id: PydanticObjectId
    unit_count: int = Field(default=1, ge=1)
    start_date: datetime
    end_date: datetime
    duration_hours: int
    duration_days: int
    status: BookingStatus = Field(default=BookingStatus.RESERVED)
    pricing_snapshot: PricingSnapshot
    notes: Optional[str] = None

    pickup_details: Optional[PickupDetails] = None
    return_details: Optional[ReturnDetails] = None
    pickup_document: Optional[GeneratedDocument] = None
    return_document: Optional[GeneratedDocument] = None
    penalties: Optional[Penalties] = None
    settlement: Optional[Settlement] = None

    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    pickup_reminder_sent_at: Optional[datetime] = None
    return_reminder_sent_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "bookings"
        indexes = [
            IndexModel([("booking_code", ASCENDING)], name="booking_code_unique_index", unique=True),
            IndexModel([("customer_id", ASCENDING), ("created_at", DESCENDING)], name="booking_customer_index"),
            IndexModel(
                [("product_id", ASCENDING), ("status", ASCENDING), ("start_date", ASCENDING), ("end_date", ASCENDING)],
                name="booking_product_window_index",
            ),
            IndexModel([("status", ASCENDING), ("end_date", ASCENDING)], name="booking_status_end_index"),
        ]

    # --- Pydantic Schemas ---
    class Quote(BaseModel):
        product_id: str
        start_date: datetime
        end_date: datetime
        unit_count: int = Field(default=1, ge=1)

        @model_validator(mode="after")
        def check_window(self):
            if as_utc(self.end_date) <= as_utc(self.start_date):
                raise ValueError("end_date must be after start_date")
            return self

    class Create(Quote):
        notes: Optional[str] = Field(None, max_length=500)

    class Update(BaseModel):
        """Changes to a reserved booking; unset fields keep their current value."""
        start_date: Optional[datetime] = None
        end_date: Optional[datetime] = None
        unit_count: Optional[int] = Field(None, ge=1)
        notes: Optional[str] = Field(None, max_length=500)

    class PickupConfirm(BaseModel):
        pickup_address: Optional[Address] = None
        notes: Optional[str] = Field(None, max_length=500)

    class ReturnConfirm(BaseModel):
        condition: ReturnCondition = ReturnCondition.GOOD
        drop_address: Optional[Address] = None
        returned_at: Optional[datetime] = None  # Defaults to now
        notes: Optional[str] = Field(None, max_length=500)

    class Cancel(BaseModel):
        reason: Optional[str] = Field(None, max_length=500)

    class Response(BaseModel):
        id: str
        booking_code: str
        customer_id: str
        product_id: str
        customer: Optional[UserRefSimple] = None
        product_name: Optional[str] = None
        unit_count: int
        start_date: datetime
        end_date: datetime
        duration_hours: int
        duration_days: int
        status: BookingStatus
        pricing_snapshot: PricingSnapshot
        notes: Optional[str] = None
        pickup_details: Optional[Dict[str, Any]] = None
        return_details: Optional[Dict[str, Any]] = None
        pickup_document: Optional[GeneratedDocument] = None
        return_document: Optional[GeneratedDocument] = None
        penalties: Optional[Penalties] = None
        settlement: Optional[Settlement] = None
        cancellation_reason: Optional[str] = None
        cancelled_at: Optional[datetime] = None
        created_at: datetime
        updated_at: datetime

        class Config:
            use_enum_values = True


class BookingPage(BaseModel):
    bookings: List[Booking.Response]
    pagination: Pagination


def _detail_dict(detail: Optional[BaseModel]) -> Optional[Dict[str, Any]]:
    if detail is None:
        return None
    return detail.model_dump(mode="json")


def booking_response(booking: Booking, customer: UserRefSimple = None, product_name: str = None) -> Booking.Response:
    return Booking.Response(
        id=str(booking.id),
        booking_code=booking.booking_code,
        customer_id=str(booking.customer_id),
        product_id=str(booking.product_id),
        customer=customer,
        product_name=product_name,
        unit_count=booking.unit_count,
        start_date=booking.start_date,
        end_date=booking.end_date,
        duration_hours=booking.duration_hours,
        duration_days=booking.duration_days,
        status=booking.status,
        pricing_snapshot=booking.pricing_snapshot,
        notes=booking.notes,
        pickup_details=_detail_dict(booking.pickup_details),
        return_details=_detail_dict(booking.return_details),
        pickup_document=booking.pickup_document,
        return_document=booking.return_document,
        penalties=booking.penalties,
        settlement=booking.settlement,
        cancellation_reason=booking.cancellation_reason,
        cancelled_at=booking.cancelled_at,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )
