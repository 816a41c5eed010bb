# rental_api/core/pricing.py
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from rental_api.models.booking import AppliedRule, PricingSnapshot
from rental_api.models.common import BaseRates, as_utc, utcnow
from rental_api.models.enum import ApplyTo, EffectType, RuleOperator

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24
HOURS_PER_WEEK = 24 * 7


class PricingError(ValueError):
    """Raised when a price cannot be computed for the requested rental."""


def _plain(value: Any) -> Any:
    # Enum members compare by their stored value
    return getattr(value, "value", value)


def _round(amount: float) -> float:
    return round(amount, 2)


def compute_base_price(rates: BaseRates, duration_hours: int, unit_count: int = 1) -> float:
    """
    Cheapest combination of weekly, daily and hourly rates for the duration.
    Leftover hours never cost more than a day, and leftover days plus hours never
    cost more than a week.
    """
    if duration_hours <= 0:
        raise PricingError("Rental duration must be positive")
    if unit_count <= 0:
        raise PricingError("Unit count must be positive")

    weeks, remainder = divmod(int(duration_hours), HOURS_PER_WEEK)
    days, hours = divmod(remainder, HOURS_PER_DAY)

    hours_cost = min(hours * rates.hourly, rates.daily)
    days_cost = min(days * rates.daily + hours_cost, rates.weekly)
    total = weeks * rates.weekly + days_cost
    return _round(total * unit_count)


def evaluate_condition(condition, context: Dict[str, Any]) -> bool:
    """Evaluate one {field, operator, value} condition. Missing fields and unknown operators never match."""
    field = condition.field
    if field not in context or context[field] is None:
        return False

    actual = _plain(context[field])
    expected = condition.value
    operator = _plain(condition.operator)

    try:
        if operator == RuleOperator.EQUALS.value:
            return actual == expected
        if operator == RuleOperator.NOT_EQUALS.value:
            return actual != expected
        if operator == RuleOperator.GREATER_THAN.value:
            return actual > expected
        if operator == RuleOperator.LESS_THAN.value:
            return actual < expected
        if operator == RuleOperator.GREATER_THAN_EQUAL.value:
            return actual >= expected
        if operator == RuleOperator.LESS_THAN_EQUAL.value:
            return actual <= expected
        if operator == RuleOperator.CONTAINS.value:
            if isinstance(actual, (str, list, tuple, set)):
                return expected in actual
            return False
        if operator == RuleOperator.IN.value:
            if isinstance(expected, (list, tuple, set)):
                return actual in expected
            return False
    except TypeError:
        logger.debug(f"Condition on '{field}' compared incompatible types: {actual!r} vs {expected!r}")
        return False

    logger.warning(f"Unknown condition operator '{operator}' on field '{field}'")
    return False


def rule_applies(rule, context: Dict[str, Any], at: Optional[datetime] = None) -> bool:
    if not rule.enabled:
        return False
    if not rule.validity.covers(at or utcnow()):
        return False
    if rule.product_id and str(rule.product_id) != str(context.get("product_id")):
        return False
    if rule.category_id and str(rule.category_id) != str(context.get("category_id")):
        return False
    return all(evaluate_condition(c, context) for c in rule.conditions)


def _pick_tier(tiers: List[Dict[str, Any]], duration_hours: int) -> Optional[Dict[str, Any]]:
    eligible = [t for t in tiers if t["min_hours"] <= duration_hours]
    if not eligible:
        return None
    return max(eligible, key=lambda t: t["min_hours"])


def apply_price_rules(
    base_rates: BaseRates,
    rules: Iterable,
    context: Dict[str, Any],
    deposit: float,
    at: Optional[datetime] = None,
    pricelist_id: Optional[str] = None,
    currency: str = "INR",
) -> PricingSnapshot:
    """
    Price a rental and return the snapshot stored on the booking.

    `context` must carry `duration_hours` and `unit_count`; any other keys
    (customer_type, region, product_id, category_id, ...) are available to
    rule conditions. Matching rules run from highest to lowest priority.
    """
    try:
        duration_hours = int(context["duration_hours"])
        unit_count = int(context.get("unit_count", 1))
    except (KeyError, TypeError, ValueError) as e:
        raise PricingError(f"duration_hours and unit_count must be whole numbers ({e})") from e
    at = as_utc(at or utcnow())

    hourly = base_rates.hourly
    subtotal = compute_base_price(base_rates, duration_hours, unit_count)
    discount = 0.0
    surcharge = 0.0
    applied: List[AppliedRule] = []

    def reprice(new_hourly: float) -> float:
        # Rule-adjusted hourly rates may exceed the daily cap; skip the ordering check
        rates = BaseRates.model_construct(hourly=new_hourly, daily=base_rates.daily, weekly=base_rates.weekly)
        return compute_base_price(rates, duration_hours, unit_count)

    candidates = [r for r in rules if rule_applies(r, context, at)]
    for rule in sorted(candidates, key=lambda r: r.priority, reverse=True):
        effect = rule.effect
        kind = _plain(effect.type)
        per_unit = _plain(effect.apply_to) == ApplyTo.UNIT.value
        value = effect.value

        if kind == EffectType.PERCENT_DISCOUNT.value:
            amount = subtotal * value / 100
            discount += amount
            summary = f"{value}% discount (-{_round(amount)})"
        elif kind == EffectType.FLAT_DISCOUNT.value:
            amount = value * unit_count if per_unit else value
            discount += amount
            summary = f"Flat discount of {value}{' per unit' if per_unit else ''} (-{_round(amount)})"
        elif kind == EffectType.SET_PRICE.value:
            if per_unit:
                hourly = value
                subtotal = reprice(hourly)
                summary = f"Hourly rate set to {value}"
            else:
                subtotal = value
                summary = f"Price set to {value}"
        elif kind == EffectType.TIERED_PRICE.value:
            tier = _pick_tier(value, duration_hours)
            if tier is None:
                continue
            hourly = tier["rate"]
            subtotal = reprice(hourly)
            summary = f"Tier from {tier['min_hours']}h: hourly rate {tier['rate']}"
        elif kind == EffectType.SURCHARGE.value:
            if per_unit:
                hourly += value
                subtotal = reprice(hourly)
                summary = f"Surcharge of {value} per hour"
            else:
                surcharge += value
                summary = f"Surcharge of {value}"
        else:
            logger.warning(f"Skipping rule {rule.rule_id}: unknown effect type '{kind}'")
            continue

        applied.append(AppliedRule(rule_id=rule.rule_id, summary=f"{rule.name}: {summary}"))
        logger.debug(f"Applied rule {rule.rule_id} ({kind}); subtotal={subtotal}, discount={discount}, surcharge={surcharge}")

    total = max(0.0, subtotal - discount + surcharge)
    return PricingSnapshot(
        base_rates=base_rates,
        applied_pricelist_id=pricelist_id,
        applied_rules=applied,
        subtotal=_round(subtotal),
        discount_amount=_round(discount),
        surcharge_amount=_round(surcharge),
        deposit=_round(deposit),
        total_price=_round(total),
        currency=currency,
    )


def select_pricelist(pricelists: Iterable, customer_type, region: Optional[str], at: Optional[datetime] = None):
    """
    Pick the pricelist for a customer. It must be valid at `at` and target the
    customer type; a region match wins, then the most recent start date.
    Returns None when nothing matches.
    """
    at = as_utc(at or utcnow())
    customer_type = _plain(customer_type)

    candidates = [
        p for p in pricelists
        if p.validity.covers(at) and customer_type in [_plain(t) for t in p.target_customer_types]
    ]
    if not candidates:
        return None

    def rank(p):
        region_match = bool(region) and (p.region or "").lower() == region.lower()
        return region_match, as_utc(p.validity.start_date)

    return max(candidates, key=rank)
