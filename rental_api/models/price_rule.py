# rental_api/models/price_rule.py
from typing import Optional, List, Any
from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import BaseModel, Field, model_validator
from pymongo import IndexModel, ASCENDING, DESCENDING

from .common import Validity, Pagination, utcnow
from .enum import RuleOperator, EffectType, ApplyTo


class Condition(BaseModel):
    field: str = Field(..., min_length=1)
    operator: RuleOperator
    value: Any


class PriceTier(BaseModel):
    min_hours: int = Field(..., ge=0)
    rate: float = Field(..., ge=0)


class Effect(BaseModel):
    type: EffectType
    value: Any
    apply_to: ApplyTo

    @model_validator(mode="after")
    def check_value(self):
        if self.type == EffectType.TIERED_PRICE:
            if not isinstance(self.value, list) or not self.value:
                raise ValueError("tieredPrice value must be a non-empty list of tiers")
            self.value = [PriceTier.model_validate(t).model_dump() for t in self.value]
        elif isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
            raise ValueError(f"{self.type.value} value must be a number")
        elif self.value < 0:
            raise ValueError(f"{self.type.value} value cannot be negative")
        if self.type == EffectType.PERCENT_DISCOUNT and self.value > 100:
            raise ValueError("percentDiscount value cannot exceed 100")
        return self


class PriceRule(Document):
    """Conditional discount or surcharge applied on top of the base rates."""
    rule_id: str
    name: str
    product_id: Optional[PydanticObjectId] = None
    category_id: Optional[PydanticObjectId] = None
    priority: int
    validity: Validity
    conditions: List[Condition] = Field(default_factory=list)
    effect: Effect
    enabled: bool = True

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "price_rules"
        indexes = [
            IndexModel([("rule_id", ASCENDING)], name="rule_id_unique_index", unique=True),
            IndexModel([("enabled", ASCENDING), ("priority", DESCENDING)], name="rule_enabled_priority_index"),
            IndexModel([("product_id", ASCENDING)], name="rule_product_index", sparse=True),
            IndexModel([("category_id", ASCENDING)], name="rule_category_index", sparse=True),
        ]

    class Create(BaseModel):
        rule_id: str = Field(..., min_length=1)
        name: str = Field(..., min_length=1)
        product_id: Optional[str] = None
        category_id: Optional[str] = None
        priority: int = 0
        validity: Validity
        conditions: List[Condition] = Field(default_factory=list)
        effect: Effect
        enabled: bool = True

    class Update(BaseModel):
        name: Optional[str] = None
        product_id: Optional[str] = None
        category_id: Optional[str] = None
        priority: Optional[int] = None
        validity: Optional[Validity] = None
        conditions: Optional[List[Condition]] = None
        effect: Optional[Effect] = None
        enabled: Optional[bool] = None

    class Response(BaseModel):
        id: str
        rule_id: str
        name: str
        product_id: Optional[str] = None
        category_id: Optional[str] = None
        priority: int
        validity: Validity
        conditions: List[Condition]
        effect: Effect
        enabled: bool
        created_at: datetime
        updated_at: datetime


class PriceRulePage(BaseModel):
    price_rules: List[PriceRule.Response]
    pagination: Pagination


def price_rule_response(rule: PriceRule) -> PriceRule.Response:
    data = rule.model_dump(exclude={"id", "product_id", "category_id", "revision_id"})
    return PriceRule.Response(
        id=str(rule.id),
        product_id=str(rule.product_id) if rule.product_id else None,
        category_id=str(rule.category_id) if rule.category_id else None,
        **data,
    )
