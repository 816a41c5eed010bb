# rental_api/models/product.py
from typing import Optional, List
from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import BaseModel, Field, HttpUrl, model_validator
from pymongo import IndexModel, ASCENDING, TEXT

from .common import BaseRates, Pagination, utcnow, as_utc
from .enum import ProductStatus


class AvailabilityBlock(BaseModel):
    start_date: datetime
    end_date: datetime
    reason: str

    @model_validator(mode="after")
    def check_order(self):
        if as_utc(self.end_date) <= as_utc(self.start_date):
            raise ValueError("Block end_date must be after start_date")
        return self


class RentalRules(BaseModel):
    min_rental_hours: int = Field(default=1, ge=1)
    max_rental_days: int = Field(default=30, ge=1)


class Product(Document):
    """A rentable item (equipment or EV) with a pool of identical units."""
    product_code: str
    owner_id: PydanticObjectId
    category_id: Optional[PydanticObjectId] = None
    name: str = Field(..., max_length=200)
    description: str
    images: List[str] = Field(default_factory=list)
    total_units: int = Field(default=1, ge=0)
    units_available: int = Field(default=1, ge=0)
    units_with_customer: int = Field(default=0, ge=0)
    deposit_amount: float = Field(..., ge=0, description="Deposit per unit")
    base_rates: BaseRates
    availability_blocks: List[AvailabilityBlock] = Field(default_factory=list)
    rules: RentalRules = Field(default_factory=RentalRules)
    status: ProductStatus = Field(default=ProductStatus.ACTIVE)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "products"
        indexes = [
            IndexModel([("product_code", ASCENDING)], name="product_code_unique_index", unique=True),
            IndexModel([("owner_id", ASCENDING)], name="product_owner_index"),
            IndexModel([("category_id", ASCENDING)], name="product_category_index", sparse=True),
            IndexModel([("status", ASCENDING)], name="product_status_index"),
            IndexModel([("name", TEXT), ("description", TEXT)], name="product_text_index"),
        ]

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE

    # --- Pydantic Schemas ---
    class Create(BaseModel):
        name: str = Field(..., min_length=1, max_length=200)
        description: str = Field(..., min_length=1)
        category_id: Optional[str] = None
        images: List[HttpUrl] = Field(default_factory=list)
        total_units: int = Field(default=1, ge=1)
        deposit_amount: float = Field(..., ge=0)
        base_rates: BaseRates
        availability_blocks: List[AvailabilityBlock] = Field(default_factory=list)
        rules: RentalRules = Field(default_factory=RentalRules)

    class Update(BaseModel):
        name: Optional[str] = Field(None, min_length=1, max_length=200)
        description: Optional[str] = None
        category_id: Optional[str] = None
        images: Optional[List[HttpUrl]] = None
        deposit_amount: Optional[float] = Field(None, ge=0)
        base_rates: Optional[BaseRates] = None
        availability_blocks: Optional[List[AvailabilityBlock]] = None
        rules: Optional[RentalRules] = None
        status: Optional[ProductStatus] = None

    class UnitsUpdate(BaseModel):
        total_units: int = Field(..., ge=0)

    class Response(BaseModel):
        id: str
        product_code: str
        owner_id: str
        category_id: Optional[str] = None
        name: str
        description: str
        images: List[str]
        total_units: int
        units_available: int
        units_with_customer: int
        deposit_amount: float
        base_rates: BaseRates
        availability_blocks: List[AvailabilityBlock]
        rules: RentalRules
        status: ProductStatus
        created_at: datetime
        updated_at: datetime

        class Config:
            use_enum_values = True


def product_response(product: Product) -> Product.Response:
    data = product.model_dump(exclude={"id", "owner_id", "category_id", "revision_id"})
    return Product.Response(
        id=str(product.id),
        owner_id=str(product.owner_id),
        category_id=str(product.category_id) if product.category_id else None,
        **data,
    )


class ProductPage(BaseModel):
    products: List[Product.Response]
    pagination: Pagination
