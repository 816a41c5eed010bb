# rental_api/db/database.py
import logging
from typing import Optional

import motor.motor_asyncio
from beanie import init_beanie

from rental_api.core.config import MONGODB_URL, DATABASE_NAME
from rental_api.models.user import User
from rental_api.models.otp import Otp
from rental_api.models.category import Category
from rental_api.models.product import Product
from rental_api.models.pricelist import Pricelist
from rental_api.models.price_rule import PriceRule
from rental_api.models.booking import Booking
from rental_api.models.settings import AppSettings
from rental_api.models.ev_station import EVStation
from rental_api.models.counter import SequenceCounter

logger = logging.getLogger(__name__)

DOCUMENT_MODELS = [
    User,
    Otp,
    Category,
    Product,
    Pricelist,
    PriceRule,
    Booking,
    AppSettings,
    EVStation,
    SequenceCounter,
]

_client: Optional[motor.motor_asyncio.AsyncIOMotorClient] = None


def get_client() -> Optional[motor.motor_asyncio.AsyncIOMotorClient]:
    return _client


async def init_db():
    """Connect to MongoDB and register every document model with Beanie."""
    global _client
    logger.info("Connecting to MongoDB...")
    _client = motor.motor_asyncio.AsyncIOMotorClient(MONGODB_URL, tz_aware=True)
    database = _client[DATABASE_NAME]
    logger.info(f"Using database: {DATABASE_NAME}")

    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    logger.info("Beanie initialization complete for all models.")


def close_db():
    global _client
    if _client is not None:
        _client.close()
        _client = None
        logger.info("MongoDB connection closed.")
