# tests/test_flows.py
"""
End-to-end flows through the HTTP API against an in-memory MongoDB
(mongomock-motor). The app lifespan is not run; each test initialises
Beanie on a fresh database instead.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from beanie import PydanticObjectId, init_beanie
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from rental_api.core.availability import move_units
from rental_api.core.lifecycle import transition_booking
from rental_api.core.rate_limiter import limiter
from rental_api.core.security import create_access_token, get_password_hash
from rental_api.db.database import DOCUMENT_MODELS
from rental_api.main import app
from rental_api.models.booking import Booking, PricingSnapshot
from rental_api.models.common import BaseRates, Validity
from rental_api.models.enum import BookingStatus, CustomerType, EffectType, ApplyTo, UserRole
from rental_api.models.price_rule import Effect, PriceRule
from rental_api.models.pricelist import Pricelist
from rental_api.models.product import Product
from rental_api.models.user import User
from rental_api.scheduler.jobs import mark_late_bookings, send_booking_reminders

RATES = BaseRates(hourly=100, daily=800, weekly=4000)
PASSWORD = "secret123"


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def outbox(monkeypatch):
    """Every email the app would send, as (to, subject) pairs."""
    sent = []

    def fake_notification(to, subject, lines):
        sent.append((to, subject))
        return True

    monkeypatch.setattr("rental_api.api.endpoints.bookings.send_booking_notification", fake_notification)
    monkeypatch.setattr("rental_api.scheduler.jobs.send_booking_notification", fake_notification)
    return sent


@pytest.fixture
def client(outbox):
    mongo = AsyncMongoMockClient()
    run(init_beanie(database=mongo["rental_test"], document_models=DOCUMENT_MODELS))
    limiter.reset()
    return TestClient(app)


async def _create_user(email, role=UserRole.CUSTOMER, **fields):
    user = User(
        first_name=fields.pop("first_name", "Test"),
        last_name="User",
        email=email,
        phone="9876543210",
        hashed_password=get_password_hash(PASSWORD),
        role=role,
        is_active=True,
        **fields,
    )
    await user.insert()
    return user


def make_user(email, role=UserRole.CUSTOMER, **fields):
    return run(_create_user(email, role, **fields))


def auth(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture
def admin(client):
    return make_user("admin@example.com", UserRole.ADMIN, first_name="Admin")


@pytest.fixture
def customer(client):
    return make_user("asha@example.com", first_name="Asha")


@pytest.fixture
def product(admin):
    async def _create():
        item = Product(
            product_code="PRD000001",
            owner_id=admin.id,
            name="Cordless Drill",
            description="18V drill",
            total_units=1,
            units_available=1,
            deposit_amount=1000,
            base_rates=RATES,
        )
        await item.insert()
        return item
    return run(_create())


def window(start_in_hours=24, hours=5):
    start = (datetime.now(timezone.utc) + timedelta(hours=start_in_hours)).replace(microsecond=0)
    return start, start + timedelta(hours=hours)


def book(client, user, product, start_in_hours=24, hours=5, units=1):
    start, end = window(start_in_hours, hours)
    return client.post(
        "/api/bookings/create",
        json={
            "product_id": str(product.id),
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "unit_count": units,
        },
        headers=auth(user),
    )


def insert_booking(customer, product, status, start, end, code="BK900001", **fields):
    booking = Booking(
        booking_code=code,
        customer_id=customer.id,
        product_id=product.id,
        start_date=start,
        end_date=end,
        duration_hours=int((end - start).total_seconds() // 3600),
        duration_days=1,
        status=status,
        pricing_snapshot=PricingSnapshot(base_rates=RATES, deposit=1000, total_price=500),
        **fields,
    )
    run(booking.insert())
    return booking


# --- Signup and login ---
def test_signup_otp_login_me(client, monkeypatch):
    codes = []
    monkeypatch.setattr(
        "rental_api.api.endpoints.auth.send_otp_email", lambda to, name, otp: codes.append(otp) or True
    )
    signup = client.post("/api/auth/signup", json={
        "first_name": "Ravi",
        "last_name": "Kumar",
        "email": "Ravi@Example.com",
        "phone": "9876543210",
        "password": PASSWORD,
        "confirm_password": PASSWORD,
        "aadhar_number": "123456789012",
    })
    assert signup.status_code == 201
    otp_id = signup.json()["otp_id"]

    credentials = {"email": "ravi@example.com", "password": PASSWORD}
    assert client.post("/api/auth/login", json=credentials).status_code == 401

    wrong = "000000" if codes[0] != "000000" else "111111"
    assert client.post("/api/auth/validate-otp", json={"otp_id": otp_id, "otp": wrong}).status_code == 400
    verified = client.post("/api/auth/validate-otp", json={"otp_id": otp_id, "otp": codes[0]})
    assert verified.status_code == 200
    assert verified.json()["user"]["is_active"] is True

    # The code is single use
    assert client.post("/api/auth/validate-otp", json={"otp_id": otp_id, "otp": codes[0]}).status_code == 400

    login = client.post("/api/auth/login", json=credentials)
    assert login.status_code == 200
    token = login.json()["access_token"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "ravi@example.com"


# --- Booking lifecycle ---
def test_create_pickup_return_settles_deposit(client, admin, customer, product, outbox):
    created = book(client, customer, product)
    assert created.status_code == 201
    booking = created.json()
    assert booking["status"] == "reserved"
    assert booking["pricing_snapshot"]["total_price"] == 500
    assert booking["pricing_snapshot"]["deposit"] == 1000

    pickup = client.post(f"/api/bookings/{booking['id']}/pickup/confirm", headers=auth(admin))
    assert pickup.status_code == 200
    assert pickup.json()["status"] == "picked_up"
    stock = run(Product.get(product.id))
    assert (stock.units_available, stock.units_with_customer) == (0, 1)

    returned = client.post(
        f"/api/bookings/{booking['id']}/return/confirm", json={"condition": "damaged"}, headers=auth(admin)
    )
    assert returned.status_code == 200
    body = returned.json()
    assert body["status"] == "returned"
    # Default damage rate is 10% of the deposit, at 100% for damaged items
    assert body["penalties"]["total_penalty"] == 100
    assert body["settlement"]["refund_amount"] == 900
    assert body["settlement"]["refund_amount"] == booking["pricing_snapshot"]["deposit"] - body["penalties"]["total_penalty"]
    stock = run(Product.get(product.id))
    assert (stock.units_available, stock.units_with_customer) == (1, 0)
    assert [subject for _, subject in outbox][0].startswith("Booking BK")


def test_pickup_twice_conflicts(client, admin, customer, product):
    booking_id = book(client, customer, product).json()["id"]
    assert client.post(f"/api/bookings/{booking_id}/pickup/confirm", headers=auth(admin)).status_code == 200
    second = client.post(f"/api/bookings/{booking_id}/pickup/confirm", headers=auth(admin))
    assert second.status_code == 409
    # Units were moved once
    assert run(Product.get(product.id)).units_with_customer == 1


def test_return_while_reserved_conflicts(client, admin, customer, product):
    booking_id = book(client, customer, product).json()["id"]
    response = client.post(f"/api/bookings/{booking_id}/return/confirm", headers=auth(admin))
    assert response.status_code == 409
    assert run(Booking.get(PydanticObjectId(booking_id))).status == BookingStatus.RESERVED


def test_customer_cannot_confirm_pickup(client, customer, product):
    booking_id = book(client, customer, product).json()["id"]
    assert client.post(f"/api/bookings/{booking_id}/pickup/confirm", headers=auth(customer)).status_code == 403


def test_return_before_pickup_rejected(client, admin, customer, product):
    booking_id = book(client, customer, product).json()["id"]
    client.post(f"/api/bookings/{booking_id}/pickup/confirm", headers=auth(admin))
    earlier = (datetime.now(timezone.utc) - timedelta(days=2)).isoformat()
    response = client.post(
        f"/api/bookings/{booking_id}/return/confirm", json={"returned_at": earlier}, headers=auth(admin)
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "returned_at cannot be before pickup."
    assert run(Booking.get(PydanticObjectId(booking_id))).status == BookingStatus.PICKED_UP


def test_second_booking_for_last_unit_rejected(client, customer, product):
    assert book(client, customer, product).status_code == 201
    response = book(client, customer, product, start_in_hours=26)
    assert response.status_code == 409
    assert "available" in response.json()["detail"]


def test_create_rolls_back_when_concurrent_booking_took_the_unit(client, customer, product, monkeypatch):
    start, end = window()
    insert_booking(customer, product, BookingStatus.RESERVED, start, end)

    # Both requests passed the availability check before either inserted
    async def stale_check(*args, **kwargs):
        return True, None, 0

    monkeypatch.setattr("rental_api.api.endpoints.bookings.check_product_availability", stale_check)
    response = book(client, customer, product)
    assert response.status_code == 409
    assert run(Booking.find({"product_id": product.id}).count()) == 1


def test_cancel_frees_the_unit(client, customer, product):
    booking_id = book(client, customer, product).json()["id"]
    cancelled = client.patch(f"/api/bookings/{booking_id}/cancel", json={"reason": "plans changed"}, headers=auth(customer))
    assert cancelled.status_code == 200
    assert cancelled.json()["cancellation_reason"] == "plans changed"
    assert book(client, customer, product).status_code == 201


# --- Booking update ---
def test_update_reserved_booking_reprices(client, customer, product):
    booking = book(client, customer, product, hours=5).json()
    start = datetime.fromisoformat(booking["start_date"])
    response = client.patch(
        f"/api/bookings/{booking['id']}/update",
        json={"end_date": (start + timedelta(hours=26)).isoformat(), "notes": "longer trip"},
        headers=auth(customer),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["duration_hours"] == 26
    assert body["pricing_snapshot"]["total_price"] == 1000
    assert body["notes"] == "longer trip"


def test_update_notes_only_keeps_price(client, customer, product):
    booking = book(client, customer, product).json()
    response = client.patch(f"/api/bookings/{booking['id']}/update", json={"notes": "gate 2"}, headers=auth(customer))
    assert response.status_code == 200
    assert response.json()["pricing_snapshot"]["total_price"] == booking["pricing_snapshot"]["total_price"]


def test_update_ignores_own_units_but_not_others(client, customer, product):
    first = book(client, customer, product).json()
    second = book(client, customer, product, start_in_hours=48).json()
    # Shifting the first booking by an hour still overlaps only itself
    start = datetime.fromisoformat(first["start_date"]) + timedelta(hours=1)
    moved = client.patch(
        f"/api/bookings/{first['id']}/update",
        json={"start_date": start.isoformat()},
        headers=auth(customer),
    )
    assert moved.status_code == 200
    clash = client.patch(
        f"/api/bookings/{first['id']}/update",
        json={"end_date": second["end_date"]},
        headers=auth(customer),
    )
    assert clash.status_code == 409


def test_update_rejected_after_pickup(client, admin, customer, product):
    booking_id = book(client, customer, product).json()["id"]
    client.post(f"/api/bookings/{booking_id}/pickup/confirm", headers=auth(admin))
    response = client.patch(f"/api/bookings/{booking_id}/update", json={"unit_count": 1, "notes": "x"}, headers=auth(customer))
    assert response.status_code == 409


def test_update_by_other_customer_forbidden(client, customer, product):
    booking_id = book(client, customer, product).json()["id"]
    stranger = make_user("other@example.com")
    response = client.patch(f"/api/bookings/{booking_id}/update", json={"notes": "mine now"}, headers=auth(stranger))
    assert response.status_code == 403


# --- Users ---
def test_admin_sets_role_and_customer_type(client, admin, customer):
    response = client.put(
        f"/api/users/{customer.id}",
        json={"role": "owner", "customer_type": "vip", "region": "north"},
        headers=auth(admin),
    )
    assert response.status_code == 200
    body = response.json()
    assert (body["role"], body["customer_type"], body["region"]) == ("owner", "vip", "north")
    stored = run(User.get(customer.id))
    assert stored.role == UserRole.OWNER
    assert stored.customer_type == CustomerType.VIP


def test_customer_type_change_selects_pricelist(client, admin, customer, product):
    now = datetime.now(timezone.utc)
    run(Pricelist(
        pricelist_id="PL-VIP",
        name="VIP",
        target_customer_types=[CustomerType.VIP],
        region="north",
        base_rates=BaseRates(hourly=50, daily=400, weekly=2000),
        validity=Validity(start_date=now - timedelta(days=1), end_date=now + timedelta(days=30)),
    ).insert())
    client.put(f"/api/users/{customer.id}", json={"customer_type": "vip", "region": "north"}, headers=auth(admin))

    start, end = window(hours=5)
    quote = client.post(
        "/api/bookings/quote",
        json={"product_id": str(product.id), "start_date": start.isoformat(), "end_date": end.isoformat()},
        headers=auth(customer),
    )
    assert quote.status_code == 200
    assert quote.json()["applied_pricelist_id"] == "PL-VIP"
    assert quote.json()["total_price"] == 250


def test_user_admin_routes_need_admin(client, customer):
    assert client.get("/api/users", headers=auth(customer)).status_code == 403
    assert client.put(f"/api/users/{customer.id}", json={"role": "admin"}, headers=auth(customer)).status_code == 403


def test_admin_cannot_demote_self(client, admin):
    response = client.put(f"/api/users/{admin.id}", json={"role": "customer"}, headers=auth(admin))
    assert response.status_code == 400
    assert client.patch(f"/api/users/{admin.id}/disable", headers=auth(admin)).status_code == 400


def test_admin_lists_and_disables_users(client, admin, customer):
    listed = client.get("/api/users", params={"role": "customer"}, headers=auth(admin)).json()
    assert [u["email"] for u in listed["users"]] == ["asha@example.com"]
    disabled = client.patch(f"/api/users/{customer.id}/disable", headers=auth(admin))
    assert disabled.json()["is_active"] is False
    assert client.get("/api/auth/me", headers=auth(customer)).status_code == 401


def test_update_profile(client, customer):
    response = client.put(
        "/api/users/profile", json={"first_name": " Asha ", "phone": "91234-56789"}, headers=auth(customer)
    )
    assert response.status_code == 200
    assert response.json()["first_name"] == "Asha"
    assert response.json()["phone"] == "9123456789"
    assert client.put("/api/users/profile", json={}, headers=auth(customer)).status_code == 400


def test_change_password(client, customer):
    wrong = client.put(
        "/api/users/password",
        json={"current_password": "nope", "new_password": "newpass1", "confirm_password": "newpass1"},
        headers=auth(customer),
    )
    assert wrong.status_code == 400
    changed = client.put(
        "/api/users/password",
        json={"current_password": PASSWORD, "new_password": "newpass1", "confirm_password": "newpass1"},
        headers=auth(customer),
    )
    assert changed.status_code == 200
    assert client.post("/api/auth/login", json={"email": customer.email, "password": PASSWORD}).status_code == 401
    assert client.post("/api/auth/login", json={"email": customer.email, "password": "newpass1"}).status_code == 200


# --- Reports ---
def test_dashboard_and_product_analytics(client, admin, customer, product):
    first = book(client, customer, product).json()
    client.post(f"/api/bookings/{first['id']}/pickup/confirm", headers=auth(admin))
    cancelled = book(client, customer, product, start_in_hours=72).json()
    client.patch(f"/api/bookings/{cancelled['id']}/cancel", headers=auth(customer))

    dashboard = client.get("/api/reports/dashboard", headers=auth(customer)).json()
    assert dashboard["total_bookings"] == 2
    assert dashboard["total_amount_spent"] == 500
    assert dashboard["active_rentals"] == 1
    assert dashboard["late_returns"] == 0
    assert dashboard["most_rented_products"] == [
        {"product_id": str(product.id), "product_name": "Cordless Drill", "count": 1}
    ]
    assert len(dashboard["recent_bookings"]) == 2

    analytics = client.get("/api/reports/products", headers=auth(customer)).json()
    assert len(analytics) == 1
    assert analytics[0]["product_name"] == "Cordless Drill"
    assert analytics[0]["total_rentals"] == 1
    assert analytics[0]["total_spent"] == 500


def test_booking_report_filters_by_status(client, customer, product):
    kept = book(client, customer, product).json()
    dropped = book(client, customer, product, start_in_hours=72).json()
    client.patch(f"/api/bookings/{dropped['id']}/cancel", headers=auth(customer))

    report = client.get("/api/reports/bookings", params={"status": "reserved"}, headers=auth(customer)).json()
    assert report["total_bookings"] == 1
    assert report["bookings"][0]["id"] == kept["id"]
    assert report["total_amount"] == 500


def test_reports_for_other_users_need_admin(client, admin, customer):
    stranger = make_user("other@example.com")
    url = f"/api/reports/dashboard?user_id={customer.id}"
    assert client.get(url, headers=auth(stranger)).status_code == 403
    assert client.get(url, headers=auth(admin)).status_code == 200


# --- Price rule dry run ---
def test_rule_test_with_non_numeric_duration_is_400(client, admin):
    now = datetime.now(timezone.utc)
    rule = PriceRule(
        rule_id="WEEKEND10",
        name="Weekend",
        priority=1,
        validity=Validity(start_date=now - timedelta(days=1), end_date=now + timedelta(days=1)),
        effect=Effect(type=EffectType.PERCENT_DISCOUNT, value=10, apply_to=ApplyTo.TOTAL),
    )
    run(rule.insert())
    body = {"base_rates": RATES.model_dump(), "context": {"duration_hours": "abc"}}
    response = client.post(f"/api/pricerules/{rule.id}/test", json=body, headers=auth(admin))
    assert response.status_code == 400
    assert "duration_hours" in response.json()["detail"]

    body["context"]["duration_hours"] = 3
    ok = client.post(f"/api/pricerules/{rule.id}/test", json=body, headers=auth(admin))
    assert ok.status_code == 200
    assert ok.json()["snapshot"]["total_price"] == 270


# --- Scheduler jobs ---
def test_mark_late_bookings(client, customer, product):
    now = datetime.now(timezone.utc)
    overdue = insert_booking(
        customer, product, BookingStatus.PICKED_UP, now - timedelta(days=2), now - timedelta(hours=1), code="BK1"
    )
    on_time = insert_booking(
        customer, product, BookingStatus.PICKED_UP, now - timedelta(hours=2), now + timedelta(hours=5), code="BK2"
    )
    never_collected = insert_booking(
        customer, product, BookingStatus.RESERVED, now - timedelta(days=2), now - timedelta(hours=1), code="BK3"
    )
    assert run(mark_late_bookings()) == 1
    assert run(Booking.get(overdue.id)).status == BookingStatus.LATE
    assert run(Booking.get(on_time.id)).status == BookingStatus.PICKED_UP
    assert run(Booking.get(never_collected.id)).status == BookingStatus.RESERVED


def test_late_booking_can_still_be_returned(client, admin, customer, product):
    now = datetime.now(timezone.utc)
    booking = insert_booking(
        customer, product, BookingStatus.LATE, now - timedelta(days=3), now - timedelta(hours=20), code="BK1"
    )
    response = client.post(f"/api/bookings/{booking.id}/return/confirm", headers=auth(admin))
    assert response.status_code == 200
    # Part of a day late counts as one day, at the default 5% of the deposit
    assert response.json()["penalties"]["late_penalty"]["amount"] == 50


def test_send_booking_reminders_once(client, customer, product, outbox):
    now = datetime.now(timezone.utc)
    insert_booking(customer, product, BookingStatus.RESERVED, now + timedelta(hours=1), now + timedelta(hours=6), code="BK1")
    insert_booking(customer, product, BookingStatus.PICKED_UP, now - timedelta(hours=6), now + timedelta(hours=3), code="BK2")
    insert_booking(customer, product, BookingStatus.RESERVED, now + timedelta(days=5), now + timedelta(days=6), code="BK3")

    assert run(send_booking_reminders()) == 2
    assert sorted(subject for _, subject in outbox) == ["Pickup reminder", "Return reminder"]
    assert run(send_booking_reminders()) == 0


# --- Guarded updates ---
def test_transition_guard_loses_to_earlier_change(client, customer, product):
    start, end = window()
    booking = insert_booking(customer, product, BookingStatus.RESERVED, start, end)
    assert run(transition_booking(booking.id, [BookingStatus.RESERVED], BookingStatus.CANCELLED)) is not None
    assert run(transition_booking(booking.id, [BookingStatus.RESERVED], BookingStatus.PICKED_UP)) is None
    assert run(Booking.get(booking.id)).status == BookingStatus.CANCELLED


def test_move_units_stays_within_pool(client, product):
    run(move_units(product.id, 1, to_customer=True))
    run(move_units(product.id, 1, to_customer=True))
    stock = run(Product.get(product.id))
    assert (stock.units_available, stock.units_with_customer) == (0, 1)
    run(move_units(product.id, 5, to_customer=False))
    stock = run(Product.get(product.id))
    assert (stock.units_available, stock.units_with_customer) == (1, 0)
