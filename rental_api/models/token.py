# rental_api/models/token.py
from typing import Optional

from pydantic import BaseModel

from .user import User


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    user_id: Optional[str] = None


class AuthResponse(Token):
    user: User.Response


class SignupResponse(BaseModel):
    message: str
    otp_id: str
    user_id: str
