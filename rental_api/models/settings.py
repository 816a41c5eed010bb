# rental_api/models/settings.py
from typing import Optional
from datetime import datetime

from beanie import Document
from pydantic import BaseModel, Field, model_validator

from .common import utcnow
from .enum import PenaltyType

DEFAULT_DAMAGE_PENALTY_RATE = 10.0   # % of deposit
DEFAULT_LATE_PENALTY_RATE = 5.0      # % of deposit per day
DEFAULT_MAX_LATE_PENALTY_DAYS = 7
DEFAULT_PICKUP_REMINDER_HOURS = 2
DEFAULT_RETURN_REMINDER_HOURS = 24


class PenaltySettings(BaseModel):
    damage_penalty_rate: float = Field(default=DEFAULT_DAMAGE_PENALTY_RATE, ge=0)
    damage_penalty_type: PenaltyType = PenaltyType.PERCENTAGE
    late_penalty_rate: float = Field(default=DEFAULT_LATE_PENALTY_RATE, ge=0)
    late_penalty_type: PenaltyType = PenaltyType.PERCENTAGE
    max_late_penalty_days: int = Field(default=DEFAULT_MAX_LATE_PENALTY_DAYS, ge=1)


class NotificationSettings(BaseModel):
    pickup_reminder_hours: int = Field(default=DEFAULT_PICKUP_REMINDER_HOURS, ge=0, le=72)
    return_reminder_hours: int = Field(default=DEFAULT_RETURN_REMINDER_HOURS, ge=0, le=72)


def _check_percentage(rate: Optional[float], kind: Optional[PenaltyType], label: str) -> None:
    if rate is not None and kind == PenaltyType.PERCENTAGE and rate > 100:
        raise ValueError(f"{label} penalty rate must be between 0 and 100 for percentage penalties")


class AppSettings(Document):
    """Application-wide settings. A single document exists; see get_settings()."""
    penalty: PenaltySettings = Field(default_factory=PenaltySettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "settings"

    @model_validator(mode="after")
    def check_rates(self):
        _check_percentage(self.penalty.damage_penalty_rate, self.penalty.damage_penalty_type, "Damage")
        _check_percentage(self.penalty.late_penalty_rate, self.penalty.late_penalty_type, "Late")
        return self

    class PenaltyUpdate(BaseModel):
        damage_penalty_rate: Optional[float] = Field(None, ge=0)
        damage_penalty_type: Optional[PenaltyType] = None
        late_penalty_rate: Optional[float] = Field(None, ge=0)
        late_penalty_type: Optional[PenaltyType] = None
        max_late_penalty_days: Optional[int] = Field(None, ge=1)

        @model_validator(mode="after")
        def check_rates(self):
            # Rates sent without a type are checked against the stored type by merge_penalty_settings()
            _check_percentage(self.damage_penalty_rate, self.damage_penalty_type, "Damage")
            _check_percentage(self.late_penalty_rate, self.late_penalty_type, "Late")
            return self

    class NotificationUpdate(BaseModel):
        pickup_reminder_hours: Optional[int] = Field(None, ge=0, le=72)
        return_reminder_hours: Optional[int] = Field(None, ge=0, le=72)

    class Response(BaseModel):
        penalty: PenaltySettings
        notifications: NotificationSettings
        updated_at: datetime

        class Config:
            use_enum_values = True

    class Stats(BaseModel):
        penalty_settings: PenaltySettings
        notification_settings: NotificationSettings
        last_updated: datetime


async def get_settings() -> AppSettings:
    """Return the settings singleton, creating it with defaults on first use."""
    settings = await AppSettings.find_one({})
    if settings is None:
        settings = AppSettings()
        await settings.insert()
    return settings


def settings_response(settings: AppSettings) -> AppSettings.Response:
    return AppSettings.Response(
        penalty=settings.penalty, notifications=settings.notifications, updated_at=settings.updated_at
    )


def merge_penalty_settings(current: PenaltySettings, update: "AppSettings.PenaltyUpdate") -> PenaltySettings:
    """Apply a partial update. Raises ValueError when the merged rates are out of range."""
    merged = current.model_copy(update=update.model_dump(exclude_unset=True, exclude_none=True))
    _check_percentage(merged.damage_penalty_rate, merged.damage_penalty_type, "Damage")
    _check_percentage(merged.late_penalty_rate, merged.late_penalty_type, "Late")
    return PenaltySettings.model_validate(merged.model_dump())
