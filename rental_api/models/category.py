# rental_api/models/category.py
from typing import Optional
from datetime import datetime

from beanie import Document
from pydantic import BaseModel, Field
from pymongo import IndexModel, ASCENDING

from .common import utcnow


class Category(Document):
    name: str
    category_code: Optional[str] = None  # Generated from the "category" sequence before insert
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "categories"
        indexes = [
            IndexModel([("name", ASCENDING)], name="category_name_unique_index", unique=True),
            IndexModel([("category_code", ASCENDING)], name="category_code_unique_index", unique=True, sparse=True),
        ]

    class Create(BaseModel):
        name: str = Field(..., min_length=1, max_length=100)
        description: Optional[str] = None

    class Response(BaseModel):
        id: str
        name: str
        category_code: Optional[str] = None
        description: Optional[str] = None
        created_at: datetime


def category_response(category: Category) -> Category.Response:
    return Category.Response(
        id=str(category.id), name=category.name, category_code=category.category_code,
        description=category.description, created_at=category.created_at,
    )
