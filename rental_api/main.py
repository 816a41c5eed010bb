# rental_api/main.py
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, Request, status as fastapi_status, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from pymongo.errors import ConnectionFailure, PyMongoError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from rental_api.api.api import api_router
from rental_api.core.config import APP_ENV, LATE_CHECK_INTERVAL_MINUTES, SCHEDULER_TIMEZONE, setup_logging
from rental_api.core.lifecycle import InvalidTransition
from rental_api.core.rate_limiter import get_rate_limiter, rate_limit_exception_handler
from rental_api.db.database import close_db, get_client, init_db
from rental_api.middleware.authentication import AuthMiddleware
from rental_api.middleware.logging import RequestLoggingMiddleware
from rental_api.scheduler.jobs import mark_late_bookings, send_booking_reminders

STARTED_AT = time.monotonic()

scheduler = AsyncIOScheduler(timezone=SCHEDULER_TIMEZONE)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Application startup...")
    await init_db()
    logger.info("Database initialized.")

    scheduler.add_job(
        mark_late_bookings,
        trigger=IntervalTrigger(minutes=LATE_CHECK_INTERVAL_MINUTES),
        id="mark_late_bookings_job",
        name="Mark Overdue Bookings Late",
        replace_existing=True,
        misfire_grace_time=60 * 15,
    )
    scheduler.add_job(
        send_booking_reminders,
        trigger=IntervalTrigger(minutes=15),
        id="booking_reminders_job",
        name="Send Pickup And Return Reminders",
        replace_existing=True,
        misfire_grace_time=60 * 15,
    )
    scheduler.start()
    logger.info(f"Scheduler started with timezone: {scheduler.timezone}")
    yield
    logger.info("Application shutdown...")
    if scheduler.running:
        scheduler.shutdown()
    close_db()


app = FastAPI(
    title="Rental API",
    description="Rental bookings with pricing rules, pickup and return documents, penalties and deposit settlement.",
    version="1.0.0",
    lifespan=lifespan,
)

# --- Error handling ---
app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)


@app.exception_handler(RequestValidationError)
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    logger.error(f"Validation Error: {exc.errors()}")
    return JSONResponse(
        status_code=fastapi_status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation Error", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    logger.warning(f"Rejected transition: {exc}")
    return JSONResponse(status_code=fastapi_status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP Exception: Status={exc.status_code}, Detail={exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"Unhandled Exception: {exc}")
    return JSONResponse(
        status_code=fastapi_status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An internal server error occurred."},
    )


# --- Middleware ---
# Added last runs first: request logging wraps auth so the request id exists when auth logs
app.add_middleware(AuthMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.state.limiter = get_rate_limiter()
app.add_middleware(GZipMiddleware, minimum_size=500)

app.include_router(api_router)


@app.get("/")
async def read_root():
    return {"message": "Welcome to the Rental API!"}


@app.get("/api/health")
async def health():
    return {
        "ok": True,
        "env": APP_ENV,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 1),
    }


@app.get("/ping-mongodb")
async def ping_mongodb():
    client = get_client()
    if client is None:
        raise HTTPException(status_code=503, detail="MongoDB client is not initialized.")
    try:
        await client.admin.command("ping")
        return {"status": "success", "message": "MongoDB connection is healthy."}
    except ConnectionFailure:
        raise HTTPException(status_code=503, detail="MongoDB connection failed.")
    except PyMongoError as e:
        logger.error(f"MongoDB ping failed: {e}")
        raise HTTPException(status_code=503, detail="MongoDB connection failed.")
