# rental_api/core/rate_limiter.py
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from loguru import logger

# In-memory storage; a single process holds all counters
limiter = Limiter(key_func=get_remote_address)

SIGNUP_LIMIT = "3/hour"
LOGIN_LIMIT = "5/15 minutes"
OTP_LIMIT = "10/minute"
BOOKING_CREATE_LIMIT = "30/hour"
LIST_LIMIT = "120/minute"
USER_UPDATE_LIMIT = "20/hour"
PASSWORD_CHANGE_LIMIT = "5/hour"


def get_rate_limiter() -> Limiter:
    return limiter


def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
    request_id = getattr(request.state, "request_id", "N/A")
    logger.warning(f"RID:{request_id} Rate limit exceeded on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}"},
    )
