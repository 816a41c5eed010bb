# rental_api/api/endpoints/price_rules.py
from typing import Any, Dict, List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status, Path, Body, Query, Request
from loguru import logger
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from rental_api.core.pricing import apply_price_rules, rule_applies, evaluate_condition, PricingError
from rental_api.core.rate_limiter import limiter, LIST_LIMIT
from rental_api.core.security import get_current_active_user, require_admin
from rental_api.core.utils import parse_object_id
from rental_api.models.booking import PricingSnapshot
from rental_api.models.common import BaseRates, paginate, utcnow
from rental_api.models.price_rule import PriceRule, PriceRulePage, price_rule_response
from rental_api.models.user import User

router = APIRouter(tags=["Price Rules"])


class RuleTestRequest(BaseModel):
    """Sample rental used to try a rule without saving anything."""
    base_rates: BaseRates
    context: Dict[str, Any] = Field(default_factory=dict)
    deposit: float = Field(default=0, ge=0)
    at: Optional[datetime] = None


class RuleTestResult(BaseModel):
    rule_id: str
    applies: bool
    conditions: List[Dict[str, Any]]
    snapshot: Optional[PricingSnapshot] = None


async def get_rule_or_404(rule_id: str) -> PriceRule:
    rule = await PriceRule.get(parse_object_id(rule_id, "price rule ID"))
    if not rule:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Price rule '{rule_id}' not found.")
    return rule


def _scope_ids(data: dict) -> dict:
    for key in ("product_id", "category_id"):
        if key in data:
            data[key] = parse_object_id(data[key], key) if data[key] else None
    return data


def active_rule_query() -> dict:
    now = utcnow()
    return {"enabled": True, "validity.start_date": {"$lte": now}, "validity.end_date": {"$gte": now}}


@router.get("", response_model=PriceRulePage)
@limiter.limit(LIST_LIMIT)
async def list_price_rules(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    enabled: Optional[bool] = None,
    current_user: User = Depends(get_current_active_user),
):
    query = {} if enabled is None else {"enabled": enabled}
    total = await PriceRule.find(query).count()
    rules = await PriceRule.find(query).sort("-priority").skip((page - 1) * limit).limit(limit).to_list()
    return PriceRulePage(price_rules=[price_rule_response(r) for r in rules], pagination=paginate(page, limit, total))


@router.get("/active", response_model=List[PriceRule.Response])
async def list_active_rules(current_user: User = Depends(get_current_active_user)):
    rules = await PriceRule.find(active_rule_query()).sort("-priority").to_list()
    return [price_rule_response(r) for r in rules]


@router.get("/product/{product_id}", response_model=List[PriceRule.Response])
async def list_rules_for_product(product_id: str = Path(...), current_user: User = Depends(get_current_active_user)):
    """Active rules scoped to the product plus unscoped rules that can reach it."""
    query = active_rule_query()
    query["$or"] = [{"product_id": parse_object_id(product_id, "product ID")}, {"product_id": None}]
    rules = await PriceRule.find(query).sort("-priority").to_list()
    return [price_rule_response(r) for r in rules]


@router.get("/{rule_id}", response_model=PriceRule.Response)
async def read_price_rule(rule_id: str = Path(...), current_user: User = Depends(get_current_active_user)):
    return price_rule_response(await get_rule_or_404(rule_id))


@router.post("", response_model=PriceRule.Response, status_code=status.HTTP_201_CREATED)
async def create_price_rule(rule_in: PriceRule.Create = Body(...), current_user: User = Depends(require_admin)):
    if await PriceRule.find_one(PriceRule.rule_id == rule_in.rule_id):
        raise HTTPException(status_code=400, detail=f"Rule id '{rule_in.rule_id}' already exists.")
    rule = PriceRule(**_scope_ids(rule_in.model_dump()))
    try:
        await rule.insert()
    except DuplicateKeyError as e:
        raise HTTPException(status_code=400, detail=f"Rule id '{rule_in.rule_id}' already exists.") from e
    logger.info(f"Price rule '{rule.rule_id}' created by '{current_user.email}'.")
    return price_rule_response(rule)


@router.put("/{rule_id}", response_model=PriceRule.Response)
async def update_price_rule(
    rule_id: str = Path(...),
    rule_in: PriceRule.Update = Body(...),
    current_user: User = Depends(require_admin),
):
    rule = await get_rule_or_404(rule_id)
    update_data = _scope_ids(rule_in.model_dump(exclude_unset=True))
    if not update_data:
        raise HTTPException(status_code=400, detail="No update data provided.")
    update_data["updated_at"] = utcnow()
    await rule.update({"$set": update_data})
    logger.info(f"Price rule {rule_id} updated by '{current_user.email}'.")
    return price_rule_response(await get_rule_or_404(rule_id))


@router.delete("/{rule_id}")
async def delete_price_rule(rule_id: str = Path(...), current_user: User = Depends(require_admin)):
    rule = await get_rule_or_404(rule_id)
    await rule.delete()
    logger.info(f"Price rule {rule_id} deleted by '{current_user.email}'.")
    return {"message": "Price rule deleted successfully"}


@router.patch("/{rule_id}/toggle", response_model=PriceRule.Response)
async def toggle_price_rule(rule_id: str = Path(...), current_user: User = Depends(require_admin)):
    rule = await get_rule_or_404(rule_id)
    rule.enabled = not rule.enabled
    rule.updated_at = utcnow()
    await rule.save()
    logger.info(f"Price rule {rule_id} {'enabled' if rule.enabled else 'disabled'} by '{current_user.email}'.")
    return price_rule_response(rule)


@router.post("/{rule_id}/test", response_model=RuleTestResult)
async def test_price_rule(
    rule_id: str = Path(...),
    test_in: RuleTestRequest = Body(...),
    current_user: User = Depends(require_admin),
):
    """Evaluate one rule against a sample context and price it. Nothing is stored."""
    rule = await get_rule_or_404(rule_id)
    at = test_in.at or utcnow()
    context = {"unit_count": 1, **test_in.context}

    conditions = [
        {"field": c.field, "operator": c.operator.value, "value": c.value, "matched": evaluate_condition(c, context)}
        for c in rule.conditions
    ]
    applies = rule_applies(rule, context, at)

    snapshot = None
    if "duration_hours" in context:
        try:
            snapshot = apply_price_rules(test_in.base_rates, [rule], context, test_in.deposit, at=at)
        except PricingError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return RuleTestResult(rule_id=rule.rule_id, applies=applies, conditions=conditions, snapshot=snapshot)
