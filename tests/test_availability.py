# tests/test_availability.py
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from rental_api.core.availability import blocking_reason, committed_units, windows_overlap
from rental_api.models.product import AvailabilityBlock

START = datetime(2026, 6, 1, 10, 0, tzinfo=timezone.utc)
END = START + timedelta(days=2)


def product(total_units=3, active=True, blocks=None):
    return SimpleNamespace(total_units=total_units, is_active=active, availability_blocks=blocks or [])


def booking(units):
    return SimpleNamespace(unit_count=units)


def test_windows_overlap_is_half_open():
    assert windows_overlap(START, END, END - timedelta(hours=1), END + timedelta(hours=1))
    # Back-to-back rentals do not collide
    assert not windows_overlap(START, END, END, END + timedelta(days=1))
    assert not windows_overlap(START, END, START - timedelta(days=1), START)


def test_committed_units():
    assert committed_units([booking(1), booking(2)]) == 3
    assert committed_units([]) == 0


def test_available_when_capacity_left():
    assert blocking_reason(product(), START, END, 1, [booking(2)]) is None


def test_rejects_when_capacity_exhausted():
    reason = blocking_reason(product(), START, END, 2, [booking(2)])
    assert reason == "Only 1 of 3 unit(s) available for this period"


def test_rejects_inactive_product():
    assert blocking_reason(product(active=False), START, END, 1, []) == "Product is not active"


def test_rejects_non_positive_units():
    assert blocking_reason(product(), START, END, 0, []) == "Unit count must be positive"


def test_rejects_blocked_period():
    block = AvailabilityBlock(start_date=START + timedelta(hours=5), end_date=END + timedelta(days=1), reason="Service")
    reason = blocking_reason(product(blocks=[block]), START, END, 1, [])
    assert reason == "Product is blocked for this period: Service"


def test_block_outside_window_is_ignored():
    block = AvailabilityBlock(start_date=END, end_date=END + timedelta(days=1), reason="Service")
    assert blocking_reason(product(blocks=[block]), START, END, 1, []) is None
