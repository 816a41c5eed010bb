# rental_api/models/common.py
from typing import Optional
from datetime import datetime, timezone

from pydantic import BaseModel, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by MongoDB) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BaseRates(BaseModel):
    """Rates must be positive and ordered; the daily and weekly rates cap shorter periods."""
    hourly: float = Field(..., gt=0)
    daily: float = Field(..., gt=0)
    weekly: float = Field(..., gt=0)

    @model_validator(mode="after")
    def check_order(self):
        if self.hourly > self.daily:
            raise ValueError("hourly rate cannot exceed the daily rate")
        if self.daily > self.weekly:
            raise ValueError("daily rate cannot exceed the weekly rate")
        return self


class Validity(BaseModel):
    start_date: datetime
    end_date: datetime

    @model_validator(mode="after")
    def check_order(self):
        if as_utc(self.end_date) <= as_utc(self.start_date):
            raise ValueError("validity end_date must be after start_date")
        return self

    def covers(self, at: datetime) -> bool:
        at = as_utc(at)
        return as_utc(self.start_date) <= at <= as_utc(self.end_date)


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


def paginate(page: int, limit: int, total: int) -> Pagination:
    pages = (total + limit - 1) // limit if limit else 0
    return Pagination(page=page, limit=limit, total=total, pages=pages)
