# tests/test_security.py
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from jose import JWTError

from rental_api.core.security import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)
from rental_api.core.utils import format_code, parse_object_id
from rental_api.models.otp import Otp, generate_otp_code, otp_expiry
from fastapi import HTTPException


def test_password_hash_round_trip():
    hashed = get_password_hash("s3cret!")
    assert hashed != "s3cret!"
    assert verify_password("s3cret!", hashed)
    assert not verify_password("wrong", hashed)


def test_token_carries_user_id():
    token = create_access_token({"sub": "65f0c0ffee0000000000abcd", "role": "customer"})
    assert decode_access_token(token).user_id == "65f0c0ffee0000000000abcd"


def test_expired_token_rejected():
    token = create_access_token({"sub": "abc"}, expires_delta=timedelta(seconds=-1))
    with pytest.raises(JWTError):
        decode_access_token(token)


def test_token_without_subject_rejected():
    with pytest.raises(JWTError):
        decode_access_token(create_access_token({"role": "admin"}))


def test_otp_code_is_six_digits():
    for _ in range(20):
        code = generate_otp_code()
        assert len(code) == 6 and code.isdigit()


def test_otp_expiry():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    expires = otp_expiry(10, now=now)
    assert expires == now + timedelta(minutes=10)
    # is_expired only reads expires_at
    otp = SimpleNamespace(expires_at=expires.replace(tzinfo=None))
    assert not Otp.is_expired(otp, now=now + timedelta(minutes=9))
    assert Otp.is_expired(otp, now=now + timedelta(minutes=11))


def test_format_code():
    assert format_code("BK", 42) == "BK000042"
    assert format_code("CAT", 7, width=3) == "CAT007"


def test_parse_object_id():
    assert str(parse_object_id("65f0c0ffee0000000000abcd")) == "65f0c0ffee0000000000abcd"
    with pytest.raises(HTTPException) as exc_info:
        parse_object_id("not-an-id", "booking ID")
    assert exc_info.value.status_code == 400
