# rental_api/core/penalties.py
import math
from datetime import datetime

from rental_api.models.booking import PenaltyDetail, Penalties, Settlement
from rental_api.models.common import as_utc
from rental_api.models.enum import PenaltyType, ReturnCondition, SettlementStatus
from rental_api.models.settings import PenaltySettings

SECONDS_PER_DAY = 24 * 60 * 60

# Share of the standard damage penalty charged per return condition
DAMAGE_FACTORS = {
    ReturnCondition.EXCELLENT: 0.0,
    ReturnCondition.GOOD: 0.0,
    ReturnCondition.FAIR: 0.5,
    ReturnCondition.DAMAGED: 1.0,
}


def _money(amount: float) -> float:
    return round(amount, 2)


def _standard_penalty(deposit: float, rate: float, kind: PenaltyType) -> float:
    if PenaltyType(kind) == PenaltyType.FIXED:
        return rate
    return deposit * rate / 100


def calculate_damage_penalty(deposit: float, condition: ReturnCondition, settings: PenaltySettings) -> PenaltyDetail:
    condition = ReturnCondition(condition)
    factor = DAMAGE_FACTORS[condition]
    if factor == 0:
        return PenaltyDetail(amount=0, reason="None")

    amount = _standard_penalty(deposit, settings.damage_penalty_rate, settings.damage_penalty_type) * factor
    if PenaltyType(settings.damage_penalty_type) == PenaltyType.FIXED:
        basis = f"fixed {settings.damage_penalty_rate}"
    else:
        basis = f"{settings.damage_penalty_rate}% of deposit"
    share = "50% of " if factor < 1 else ""
    return PenaltyDetail(amount=_money(amount), reason=f"Returned in {condition.value} condition: {share}{basis}")


def late_days(expected_return: datetime, actual_return: datetime) -> int:
    """Whole days late, rounding any part day up. Zero when on time or early."""
    diff = (as_utc(actual_return) - as_utc(expected_return)).total_seconds()
    if diff <= 0:
        return 0
    return math.ceil(diff / SECONDS_PER_DAY)


def calculate_late_penalty(
    expected_return: datetime, actual_return: datetime, deposit: float, settings: PenaltySettings
) -> PenaltyDetail:
    days = late_days(expected_return, actual_return)
    if days <= 0:
        return PenaltyDetail(amount=0, reason="None")

    charged_days = min(days, settings.max_late_penalty_days)
    amount = _standard_penalty(deposit, settings.late_penalty_rate, settings.late_penalty_type) * charged_days
    reason = f"Returned {days} day(s) late"
    if charged_days < days:
        reason += f", charged for {charged_days} (maximum)"
    return PenaltyDetail(amount=_money(amount), reason=reason)


def calculate_total_penalty(damage: PenaltyDetail, late: PenaltyDetail) -> Penalties:
    return Penalties(
        damage_penalty=damage,
        late_penalty=late,
        total_penalty=_money(damage.amount + late.amount),
    )


def build_settlement(deposit: float, total_penalty: float) -> Settlement:
    """Deposit minus penalties. Penalties beyond the deposit are reported as outstanding."""
    return Settlement(
        original_deposit=_money(deposit),
        penalties_deducted=_money(total_penalty),
        refund_amount=_money(max(0.0, deposit - total_penalty)),
        outstanding_amount=_money(max(0.0, total_penalty - deposit)),
        status=SettlementStatus.PENALTY_APPLIED if total_penalty > 0 else SettlementStatus.FULL_REFUND,
    )
