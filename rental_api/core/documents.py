# rental_api/core/documents.py
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from rental_api.models.booking import GeneratedDocument
from rental_api.models.common import utcnow

PICKUP_DOCUMENT = "PICKUP_DOCUMENT"
RETURN_DOCUMENT = "RETURN_DOCUMENT"
INVOICE = "INVOICE"

PICKUP_TERMS = [
    "Customer must present valid ID for pickup",
    "Items must be inspected before pickup",
    "Deposit will be held until return",
    "Late returns may incur additional charges",
    "Damaged items will result in penalty charges",
]
RETURN_TERMS = [
    "Items have been inspected upon return",
    "Penalties have been calculated and applied",
    "Refund will be processed within 3-5 business days",
    "Any disputes must be reported within 24 hours",
]
INVOICE_TERMS = [
    "Rental charges are computed from the price snapshot taken at booking",
    "Penalties are deducted from the deposit at return",
]

_PREFIXES = {PICKUP_DOCUMENT: "PICKUP", RETURN_DOCUMENT: "RETURN", INVOICE: "INVOICE"}
_URL_KINDS = {PICKUP_DOCUMENT: "pickup", RETURN_DOCUMENT: "return", INVOICE: "invoice"}


def new_document_id(document_type: str) -> str:
    return f"{_PREFIXES[document_type]}-{uuid.uuid4().hex[:8].upper()}"


def _dump(value) -> Any:
    if value is None:
        return None
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


def _booking_details(booking, customer=None, product=None) -> Dict[str, Any]:
    snapshot = booking.pricing_snapshot
    return {
        "booking_code": booking.booking_code,
        "customer_name": customer.full_name if customer else None,
        "customer_email": customer.email if customer else None,
        "customer_phone": customer.phone if customer else None,
        "product_name": product.name if product else None,
        "product_description": product.description if product else None,
        "unit_count": booking.unit_count,
        "start_date": booking.start_date,
        "end_date": booking.end_date,
        "duration_hours": booking.duration_hours,
        "duration_days": booking.duration_days,
        "total_amount": snapshot.total_price,
        "deposit": snapshot.deposit,
    }


def _build(document_type: str, content: Dict[str, Any], now: Optional[datetime]) -> GeneratedDocument:
    document_id = new_document_id(document_type)
    generated_at = now or utcnow()
    content = {
        "document_id": document_id,
        "document_type": document_type,
        "generated_at": generated_at,
        **content,
        "status": "GENERATED",
    }
    return GeneratedDocument(
        document_id=document_id,
        generated_at=generated_at,
        document_url=f"/documents/{_URL_KINDS[document_type]}/{document_id}.pdf",
        document_content=content,
    )


def generate_pickup_document(booking, customer=None, product=None, pickup_address=None,
                             notes: Optional[str] = None, now: Optional[datetime] = None) -> GeneratedDocument:
    content = {
        "booking_details": _booking_details(booking, customer, product),
        "pickup_details": {
            "pickup_address": _dump(pickup_address),
            "pickup_date": booking.start_date,
            "confirmed_at": now or utcnow(),
            "special_instructions": notes or "Standard pickup process",
        },
        "terms": PICKUP_TERMS,
    }
    return _build(PICKUP_DOCUMENT, content, now)


def generate_return_document(booking, return_details, penalties, settlement,
                             customer=None, product=None, now: Optional[datetime] = None) -> GeneratedDocument:
    details = _booking_details(booking, customer, product)
    details["actual_return_date"] = return_details.returned_at
    content = {
        "booking_details": details,
        "return_details": _dump(return_details),
        "penalties": _dump(penalties),
        "final_settlement": _dump(settlement),
        "terms": RETURN_TERMS,
    }
    return _build(RETURN_DOCUMENT, content, now)


def generate_invoice_document(booking, customer=None, product=None, now: Optional[datetime] = None) -> GeneratedDocument:
    snapshot = booking.pricing_snapshot
    total_penalty = booking.penalties.total_penalty if booking.penalties else 0
    content = {
        "customer_details": {
            "name": customer.full_name if customer else None,
            "email": customer.email if customer else None,
            "phone": customer.phone if customer else None,
        },
        "booking_details": _booking_details(booking, customer, product),
        "items": [{
            "description": product.name if product else None,
            "quantity": booking.unit_count,
            "unit_price": snapshot.base_rates.daily,
            "total": snapshot.total_price,
        }],
        "pricing": {
            "subtotal": snapshot.subtotal,
            "discount": snapshot.discount_amount,
            "surcharge": snapshot.surcharge_amount,
            "deposit": snapshot.deposit,
            "total_amount": snapshot.total_price,
            "applied_rules": [r.summary for r in snapshot.applied_rules],
        },
        "penalties": _dump(booking.penalties),
        "final_settlement": _dump(booking.settlement),
        "final_amount": {
            "original_amount": snapshot.total_price,
            "penalties": total_penalty,
            "final_total": round(snapshot.total_price + total_penalty, 2),
        },
        "terms": INVOICE_TERMS,
    }
    return _build(INVOICE, content, now)


def document_summary(document: GeneratedDocument) -> str:
    """One-line description used in notifications and logs."""
    kind = document.document_content.get("document_type")
    date = document.generated_at.strftime("%Y-%m-%d")
    if kind == PICKUP_DOCUMENT:
        return f"Pickup document {document.document_id} generated on {date}"
    if kind == RETURN_DOCUMENT:
        return f"Return document {document.document_id} generated on {date}"
    if kind == INVOICE:
        return f"Invoice {document.document_id} generated on {date}"
    return f"Document {document.document_id} generated on {date}"
