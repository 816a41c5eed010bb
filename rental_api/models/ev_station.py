# rental_api/models/ev_station.py
import re
from typing import Optional, List
from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import BaseModel, Field, EmailStr, field_validator
from pymongo import IndexModel, GEOSPHERE, TEXT, ASCENDING

from .common import Pagination, utcnow
from .enum import StationStatus

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class StationAddress(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class GeoPoint(BaseModel):
    """GeoJSON point. Coordinates are [longitude, latitude]."""
    type: str = "Point"
    coordinates: List[float] = Field(..., min_length=2, max_length=2)
    address: Optional[StationAddress] = None

    @field_validator("coordinates")
    @classmethod
    def check_range(cls, v: List[float]) -> List[float]:
        lng, lat = v
        if not -180 <= lng <= 180 or not -90 <= lat <= 90:
            raise ValueError("coordinates must be [longitude, latitude] within valid ranges")
        return v


class OperatingHours(BaseModel):
    opening: str = "09:00"
    closing: str = "18:00"

    @field_validator("opening", "closing")
    @classmethod
    def check_format(cls, v: str) -> str:
        if not _HHMM.match(v):
            raise ValueError("time must be in HH:MM format")
        return v


class StationPricing(BaseModel):
    base_rate: float = Field(default=50, ge=0)       # per hour
    peak_rate: float = Field(default=75, ge=0)       # per hour during peak hours
    overnight_rate: float = Field(default=30, ge=0)  # per hour at night


class ContactInfo(BaseModel):
    phone: Optional[str] = None
    email: Optional[EmailStr] = None


class EVStation(Document):
    name: str
    location: GeoPoint
    charging_points: int = Field(default=0, ge=0)
    owner_id: PydanticObjectId
    status: StationStatus = Field(default=StationStatus.ACTIVE)
    operating_hours: OperatingHours = Field(default_factory=OperatingHours)
    pricing: StationPricing = Field(default_factory=StationPricing)
    amenities: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    contact_info: Optional[ContactInfo] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "ev_stations"
        indexes = [
            IndexModel([("location", GEOSPHERE)], name="station_location_2dsphere_index"),
            IndexModel([("name", TEXT), ("description", TEXT)], name="station_text_index"),
            IndexModel([("owner_id", ASCENDING)], name="station_owner_index"),
        ]

    class Create(BaseModel):
        name: str = Field(..., min_length=1, max_length=200)
        location: GeoPoint
        charging_points: int = Field(default=0, ge=0)
        operating_hours: OperatingHours = Field(default_factory=OperatingHours)
        pricing: StationPricing = Field(default_factory=StationPricing)
        amenities: List[str] = Field(default_factory=list)
        images: List[str] = Field(default_factory=list)
        description: Optional[str] = None
        contact_info: Optional[ContactInfo] = None

    class Update(BaseModel):
        name: Optional[str] = Field(None, min_length=1, max_length=200)
        location: Optional[GeoPoint] = None
        charging_points: Optional[int] = Field(None, ge=0)
        status: Optional[StationStatus] = None
        operating_hours: Optional[OperatingHours] = None
        pricing: Optional[StationPricing] = None
        amenities: Optional[List[str]] = None
        images: Optional[List[str]] = None
        description: Optional[str] = None
        contact_info: Optional[ContactInfo] = None

    class Response(BaseModel):
        id: str
        name: str
        location: GeoPoint
        charging_points: int
        owner_id: str
        status: StationStatus
        operating_hours: OperatingHours
        pricing: StationPricing
        amenities: List[str]
        images: List[str]
        description: Optional[str] = None
        contact_info: Optional[ContactInfo] = None
        distance_meters: Optional[float] = None
        created_at: datetime
        updated_at: datetime

        class Config:
            use_enum_values = True


class StationPage(BaseModel):
    stations: List[EVStation.Response]
    pagination: Pagination


def station_response(station: EVStation, distance_meters: float = None) -> EVStation.Response:
    data = station.model_dump(exclude={"id", "owner_id", "revision_id"})
    return EVStation.Response(
        id=str(station.id), owner_id=str(station.owner_id), distance_meters=distance_meters, **data
    )
