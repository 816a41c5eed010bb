# rental_api/models/otp.py
import secrets
from datetime import datetime, timedelta, timezone

from beanie import Document, PydanticObjectId
from pydantic import BaseModel, Field
from pymongo import IndexModel, ASCENDING


class Otp(Document):
    """One-time password issued at signup. Only the bcrypt hash is stored."""
    user_id: PydanticObjectId
    otp_hash: str
    expires_at: datetime
    attempts: int = Field(default=0, ge=0)
    is_used: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "otps"
        indexes = [
            # MongoDB removes the document once expires_at has passed
            IndexModel([("expires_at", ASCENDING)], name="otp_expiry_ttl_index", expireAfterSeconds=0),
            IndexModel([("user_id", ASCENDING), ("is_used", ASCENDING)], name="otp_user_used_index"),
        ]

    def is_expired(self, now: datetime = None) -> bool:
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now > expires_at

    class Validate(BaseModel):
        otp_id: str
        otp: str = Field(..., min_length=6, max_length=6)


def generate_otp_code() -> str:
    return str(secrets.randbelow(900000) + 100000)


def otp_expiry(minutes: int, now: datetime = None) -> datetime:
    return (now or datetime.now(timezone.utc)) + timedelta(minutes=minutes)
