# rental_api/core/utils.py
import logging
from typing import Optional

from beanie import PydanticObjectId
from fastapi import HTTPException, status
from pymongo import ReturnDocument

from rental_api.models.counter import SequenceCounter

logger = logging.getLogger(__name__)


class SequenceError(RuntimeError):
    pass


async def get_next_sequence_value(sequence_name: str) -> int:
    """Atomically increment and return the named sequence. The counter is created on first use."""
    logger.debug(f"Getting next sequence value for: {sequence_name}")
    collection = SequenceCounter.get_motor_collection()
    updated_doc = await collection.find_one_and_update(
        {"_id": sequence_name},
        {"$inc": {"value": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    if not updated_doc or "value" not in updated_doc:
        logger.error(f"Sequence counter '{sequence_name}' returned no value after upsert.")
        raise SequenceError(f"Failed to get or create sequence counter: {sequence_name}")
    return updated_doc["value"]


def format_code(prefix: str, value: int, width: int = 6) -> str:
    return f"{prefix}{value:0{width}d}"


def parse_object_id(value: Optional[str], label: str = "id") -> PydanticObjectId:
    """Convert a path or body id to an ObjectId, raising 400 when malformed."""
    if not value or not PydanticObjectId.is_valid(value):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {label} format")
    return PydanticObjectId(value)
