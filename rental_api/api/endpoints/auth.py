# rental_api/api/endpoints/auth.py
from fastapi import APIRouter, Depends, HTTPException, status, Request, Response, Body
from fastapi.security import OAuth2PasswordRequestForm
from loguru import logger
from pymongo.errors import DuplicateKeyError
from starlette.concurrency import run_in_threadpool

from rental_api.core.config import OTP_EXPIRE_MINUTES, OTP_MAX_ATTEMPTS
from rental_api.core.rate_limiter import limiter, SIGNUP_LIMIT, LOGIN_LIMIT, OTP_LIMIT
from rental_api.core.security import (
    get_password_hash,
    verify_password,
    issue_token,
    clear_token,
    get_current_active_user,
)
from rental_api.core.utils import parse_object_id
from rental_api.models.common import utcnow
from rental_api.models.otp import Otp, generate_otp_code, otp_expiry
from rental_api.models.token import AuthResponse, SignupResponse
from rental_api.models.user import User, user_response
from rental_api.services.mailer import send_otp_email

router = APIRouter(tags=["Authentication"])


async def authenticate_user(email: str, password: str) -> User:
    """Check credentials. Unknown email, wrong password and unverified account all give 401."""
    user = await User.find_one(User.email == email.strip().lower())
    if not user or not verify_password(password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is not verified. Please validate the OTP sent to your email.",
        )
    return user


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(SIGNUP_LIMIT)
async def signup(request: Request, user_in: User.Signup = Body(...)):
    """Create an inactive account and email a one-time code to activate it."""
    if await User.find_one(User.email == user_in.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    user_obj = User(
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        email=user_in.email,
        phone=user_in.phone,
        hashed_password=get_password_hash(user_in.password),
        aadhar_number=user_in.aadhar_number,
        region=user_in.region,
        is_active=False,
    )
    try:
        await user_obj.insert()
    except DuplicateKeyError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered") from e

    code = generate_otp_code()
    otp = Otp(
        user_id=user_obj.id,
        otp_hash=get_password_hash(code),
        expires_at=otp_expiry(OTP_EXPIRE_MINUTES),
    )
    await otp.insert()
    await run_in_threadpool(send_otp_email, user_obj.email, user_obj.first_name, code)

    logger.info(f"User '{user_obj.email}' signed up; OTP {otp.id} issued.")
    return SignupResponse(
        message="Signup successful. Enter the code sent to your email to activate your account.",
        otp_id=str(otp.id),
        user_id=str(user_obj.id),
    )


@router.post("/validate-otp", response_model=AuthResponse)
@limiter.limit(OTP_LIMIT)
async def validate_otp(request: Request, response: Response, otp_in: Otp.Validate = Body(...)):
    otp_id = parse_object_id(otp_in.otp_id, "OTP id")
    otp = await Otp.get(otp_id)
    if otp is None or otp.is_used:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or already used OTP")
    if otp.is_expired():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="OTP has expired")
    if otp.attempts >= OTP_MAX_ATTEMPTS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Too many failed attempts")

    if not verify_password(otp_in.otp, otp.otp_hash):
        await otp.update({"$inc": {Otp.attempts: 1}})
        remaining = max(0, OTP_MAX_ATTEMPTS - otp.attempts - 1)
        logger.warning(f"Wrong OTP for {otp.id}; {remaining} attempt(s) left.")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid OTP. {remaining} attempt(s) left.")

    # Only one concurrent request can consume the code
    consumed = await Otp.get_motor_collection().find_one_and_update(
        {"_id": otp.id, "is_used": False}, {"$set": {"is_used": True}}
    )
    if consumed is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or already used OTP")

    user = await User.get(otp.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    user.is_active = True
    user.updated_at = utcnow()
    await user.save()

    access_token = issue_token(user, response)
    logger.info(f"User '{user.email}' verified and logged in.")
    return AuthResponse(access_token=access_token, user=user_response(user))


@router.post("/login", response_model=AuthResponse)
@limiter.limit(LOGIN_LIMIT)
async def login(request: Request, response: Response, credentials: User.Login = Body(...)):
    user = await authenticate_user(credentials.email, credentials.password)
    access_token = issue_token(user, response)
    logger.info(f"User '{user.email}' logged in.")
    return AuthResponse(access_token=access_token, user=user_response(user))


@router.post("/token", response_model=AuthResponse)
@limiter.limit(LOGIN_LIMIT)
async def login_for_access_token(
    request: Request, response: Response, form_data: OAuth2PasswordRequestForm = Depends()
):
    """OAuth2 password flow for the interactive docs. The username field carries the email."""
    user = await authenticate_user(form_data.username, form_data.password)
    access_token = issue_token(user, response)
    return AuthResponse(access_token=access_token, user=user_response(user))


@router.get("/me", response_model=User.Response)
async def read_me(current_user: User = Depends(get_current_active_user)):
    return user_response(current_user)


@router.post("/refresh", response_model=AuthResponse)
async def refresh_token(response: Response, current_user: User = Depends(get_current_active_user)):
    access_token = issue_token(current_user, response)
    return AuthResponse(access_token=access_token, user=user_response(current_user))


@router.post("/logout")
async def logout(response: Response):
    clear_token(response)
    return {"message": "Logged out successfully"}
