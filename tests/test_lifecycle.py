# tests/test_lifecycle.py
import pytest

from rental_api.core.lifecycle import (
    ACTIVE_STATUSES,
    InvalidTransition,
    can_transition,
    ensure_transition,
    sources_for,
)
from rental_api.models.enum import BookingStatus as S


@pytest.mark.parametrize("current,target", [
    (S.RESERVED, S.PICKED_UP),
    (S.RESERVED, S.CANCELLED),
    (S.PICKED_UP, S.RETURNED),
    (S.PICKED_UP, S.LATE),
    (S.LATE, S.RETURNED),
])
def test_allowed(current, target):
    assert can_transition(current, target)
    ensure_transition(current, target)


@pytest.mark.parametrize("current,target", [
    (S.RESERVED, S.RETURNED),
    (S.PICKED_UP, S.CANCELLED),
    (S.PICKED_UP, S.RESERVED),
    (S.RETURNED, S.PICKED_UP),
    (S.CANCELLED, S.RESERVED),
    (S.LATE, S.CANCELLED),
])
def test_rejected(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidTransition) as exc_info:
        ensure_transition(current, target)
    assert exc_info.value.current == current
    assert exc_info.value.target == target


def test_accepts_raw_status_strings():
    assert can_transition("reserved", "picked_up")


def test_sources_for_return():
    assert set(sources_for(S.RETURNED)) == {S.PICKED_UP, S.LATE}


def test_terminal_statuses_hold_no_units():
    assert S.RETURNED not in ACTIVE_STATUSES
    assert S.CANCELLED not in ACTIVE_STATUSES
    assert S.LATE in ACTIVE_STATUSES
