# rental_api/models/user.py
import re
from typing import Optional
from datetime import datetime, timezone

from beanie import Document
from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator
from pymongo import IndexModel, ASCENDING, DESCENDING

from .enum import UserRole, CustomerType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


class User(Document):
    first_name: str = Field(..., max_length=50)
    last_name: str = Field(..., max_length=50)
    email: EmailStr
    phone: str
    hashed_password: str
    aadhar_number: Optional[str] = None
    role: UserRole = Field(default=UserRole.CUSTOMER)
    customer_type: CustomerType = Field(default=CustomerType.REGULAR)
    region: Optional[str] = None
    is_active: bool = Field(default=False)  # Flipped by OTP verification

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "users"
        indexes = [
            IndexModel([("email", ASCENDING)], name="email_unique_index", unique=True),
            IndexModel([("role", ASCENDING)], name="role_index"),
            IndexModel([("is_active", ASCENDING)], name="user_is_active_index"),
            IndexModel([("updated_at", DESCENDING)], name="user_updated_at_index"),
        ]

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    # --- Pydantic Schemas ---
    class Signup(BaseModel):
        first_name: str = Field(..., min_length=1, max_length=50)
        last_name: str = Field(..., min_length=1, max_length=50)
        email: EmailStr
        phone: str
        password: str = Field(..., min_length=6)
        confirm_password: str
        aadhar_number: str
        region: Optional[str] = None

        @field_validator("first_name", "last_name")
        @classmethod
        def strip_names(cls, v: str) -> str:
            v = v.strip()
            if not v:
                raise ValueError("Name cannot be blank")
            return v

        @field_validator("email")
        @classmethod
        def normalize_email(cls, v: str) -> str:
            return v.strip().lower()

        @field_validator("phone")
        @classmethod
        def validate_phone(cls, v: str) -> str:
            digits = _digits_only(v)
            if len(digits) != 10:
                raise ValueError("Please provide a valid 10-digit phone number")
            return digits

        @field_validator("aadhar_number")
        @classmethod
        def validate_aadhar(cls, v: str) -> str:
            digits = _digits_only(v)
            if len(digits) != 12:
                raise ValueError("Please provide a valid 12-digit Aadhar number")
            return digits

        @model_validator(mode="after")
        def passwords_match(self):
            if self.password != self.confirm_password:
                raise ValueError("Password confirmation does not match password")
            return self

    class Login(BaseModel):
        email: EmailStr
        password: str

        @field_validator("email")
        @classmethod
        def normalize_email(cls, v: str) -> str:
            return v.strip().lower()

    class AdminUpdate(BaseModel):
        role: Optional[UserRole] = None
        customer_type: Optional[CustomerType] = None
        region: Optional[str] = None
        is_active: Optional[bool] = None

    class ProfileUpdate(BaseModel):
        first_name: Optional[str] = Field(None, min_length=1, max_length=50)
        last_name: Optional[str] = Field(None, min_length=1, max_length=50)
        phone: Optional[str] = None
        region: Optional[str] = None

        @field_validator("first_name", "last_name")
        @classmethod
        def strip_names(cls, v: Optional[str]) -> Optional[str]:
            if v is None:
                return v
            v = v.strip()
            if not v:
                raise ValueError("Name cannot be blank")
            return v

        @field_validator("phone")
        @classmethod
        def validate_phone(cls, v: Optional[str]) -> Optional[str]:
            if v is None:
                return v
            digits = _digits_only(v)
            if len(digits) != 10:
                raise ValueError("Please provide a valid 10-digit phone number")
            return digits

    class PasswordChange(BaseModel):
        current_password: str
        new_password: str = Field(..., min_length=6)
        confirm_password: str

        @model_validator(mode="after")
        def passwords_match(self):
            if self.new_password != self.confirm_password:
                raise ValueError("Password confirmation does not match new password")
            return self

    class Response(BaseModel):
        id: str
        first_name: str
        last_name: str
        email: EmailStr
        phone: str
        role: UserRole
        customer_type: CustomerType
        region: Optional[str] = None
        is_active: bool
        created_at: datetime

        class Config:
            from_attributes = True
            use_enum_values = True


class UserRefSimple(BaseModel):
    """Short user reference embedded in other responses."""
    id: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None


def user_response(user: User) -> User.Response:
    data = user.model_dump(exclude={"id", "hashed_password", "aadhar_number"})
    return User.Response(id=str(user.id), **data)


def user_ref(user: User) -> UserRefSimple:
    return UserRefSimple(
        id=str(user.id), first_name=user.first_name, last_name=user.last_name,
        email=user.email, phone=user.phone,
    )
