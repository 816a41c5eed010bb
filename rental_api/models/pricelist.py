# rental_api/models/pricelist.py
from typing import Optional, List
from datetime import datetime

from beanie import Document
from pydantic import BaseModel, Field
from pymongo import IndexModel, ASCENDING

from .common import BaseRates, Validity, Pagination, utcnow
from .enum import CustomerType


class Pricelist(Document):
    """Base hourly/daily/weekly rates scoped by region and customer type."""
    pricelist_id: str
    name: str
    target_customer_types: List[CustomerType] = Field(default_factory=list)
    region: str
    base_rates: BaseRates
    currency: str = "INR"
    validity: Validity

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "pricelists"
        indexes = [
            IndexModel([("pricelist_id", ASCENDING)], name="pricelist_id_unique_index", unique=True),
            IndexModel([("region", ASCENDING)], name="pricelist_region_index"),
            IndexModel([("target_customer_types", ASCENDING)], name="pricelist_customer_type_index"),
            IndexModel(
                [("validity.start_date", ASCENDING), ("validity.end_date", ASCENDING)],
                name="pricelist_validity_index",
            ),
        ]

    class Create(BaseModel):
        pricelist_id: str = Field(..., min_length=1)
        name: str = Field(..., min_length=1)
        target_customer_types: List[CustomerType] = Field(..., min_length=1)
        region: str = Field(..., min_length=1)
        base_rates: BaseRates
        currency: str = Field(default="INR", min_length=3, max_length=3)
        validity: Validity

    class Update(BaseModel):
        name: Optional[str] = None
        target_customer_types: Optional[List[CustomerType]] = None
        region: Optional[str] = None
        base_rates: Optional[BaseRates] = None
        currency: Optional[str] = Field(None, min_length=3, max_length=3)
        validity: Optional[Validity] = None

    class Response(BaseModel):
        id: str
        pricelist_id: str
        name: str
        target_customer_types: List[CustomerType]
        region: str
        base_rates: BaseRates
        currency: str
        validity: Validity
        created_at: datetime
        updated_at: datetime

        class Config:
            use_enum_values = True


class PricelistPage(BaseModel):
    pricelists: List[Pricelist.Response]
    pagination: Pagination


def pricelist_response(pricelist: Pricelist) -> Pricelist.Response:
    data = pricelist.model_dump(exclude={"id", "revision_id"})
    return Pricelist.Response(id=str(pricelist.id), **data)
