# tests/test_penalties.py
from datetime import datetime, timedelta, timezone

import pytest

from rental_api.core.penalties import (
    build_settlement,
    calculate_damage_penalty,
    calculate_late_penalty,
    calculate_total_penalty,
    late_days,
)
from rental_api.models.enum import PenaltyType, ReturnCondition, SettlementStatus
from rental_api.models.settings import PenaltySettings

END = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings():
    return PenaltySettings()


class TestDamagePenalty:
    @pytest.mark.parametrize("condition", [ReturnCondition.EXCELLENT, ReturnCondition.GOOD])
    def test_no_penalty_for_good_condition(self, settings, condition):
        detail = calculate_damage_penalty(1000, condition, settings)
        assert detail.amount == 0
        assert detail.reason == "None"

    def test_fair_is_half_rate(self, settings):
        assert calculate_damage_penalty(1000, ReturnCondition.FAIR, settings).amount == 50

    def test_damaged_is_full_rate(self, settings):
        detail = calculate_damage_penalty(1000, ReturnCondition.DAMAGED, settings)
        assert detail.amount == 100
        assert "damaged" in detail.reason

    def test_fixed_penalty_ignores_deposit(self):
        settings = PenaltySettings(damage_penalty_rate=300, damage_penalty_type=PenaltyType.FIXED)
        assert calculate_damage_penalty(50, ReturnCondition.DAMAGED, settings).amount == 300
        assert calculate_damage_penalty(50, ReturnCondition.FAIR, settings).amount == 150


class TestLatePenalty:
    def test_late_days_rounds_up(self):
        assert late_days(END, END + timedelta(hours=1)) == 1
        assert late_days(END, END + timedelta(days=2, minutes=1)) == 3

    def test_on_time_or_early(self):
        assert late_days(END, END) == 0
        assert late_days(END, END - timedelta(hours=5)) == 0

    def test_naive_datetimes_are_utc(self):
        naive_end = END.replace(tzinfo=None)
        assert late_days(naive_end, END + timedelta(hours=3)) == 1

    def test_percentage_per_day(self, settings):
        detail = calculate_late_penalty(END, END + timedelta(days=2), 1000, settings)
        assert detail.amount == 100
        assert detail.reason == "Returned 2 day(s) late"

    def test_capped_at_max_days(self, settings):
        detail = calculate_late_penalty(END, END + timedelta(days=10), 1000, settings)
        assert detail.amount == 350
        assert "charged for 7" in detail.reason

    def test_no_penalty_when_on_time(self, settings):
        assert calculate_late_penalty(END, END, 1000, settings).amount == 0


class TestSettlement:
    def test_full_refund(self):
        settlement = build_settlement(1000, 0)
        assert settlement.refund_amount == 1000
        assert settlement.status == SettlementStatus.FULL_REFUND

    def test_penalty_deducted(self):
        settlement = build_settlement(1000, 150)
        assert settlement.refund_amount == 850
        assert settlement.penalties_deducted == 150
        assert settlement.outstanding_amount == 0
        assert settlement.status == SettlementStatus.PENALTY_APPLIED

    def test_refund_never_negative(self):
        settlement = build_settlement(100, 250)
        assert settlement.refund_amount == 0
        assert settlement.outstanding_amount == 150


def test_total_penalty_sums_both(settings):
    damage = calculate_damage_penalty(1000, ReturnCondition.DAMAGED, settings)
    late = calculate_late_penalty(END, END + timedelta(days=1), 1000, settings)
    penalties = calculate_total_penalty(damage, late)
    assert penalties.total_penalty == 150
    assert penalties.damage_penalty.amount == 100
    assert penalties.late_penalty.amount == 50
