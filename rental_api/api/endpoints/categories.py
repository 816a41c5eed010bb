# rental_api/api/endpoints/categories.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status, Body, Request, Query
from loguru import logger
from pymongo.errors import DuplicateKeyError

from rental_api.core.rate_limiter import limiter, LIST_LIMIT
from rental_api.core.security import require_admin
from rental_api.core.utils import get_next_sequence_value, format_code, parse_object_id
from rental_api.models.category import Category, category_response
from rental_api.models.user import User

router = APIRouter(tags=["Categories"])


async def get_category_or_404(category_id: str) -> Category:
    category = await Category.get(parse_object_id(category_id, "category ID"))
    if not category:
        raise HTTPException(status_code=404, detail=f"Category with ID '{category_id}' not found")
    return category


@router.post("", response_model=Category.Response, status_code=status.HTTP_201_CREATED)
async def create_category(
    category_in: Category.Create = Body(...),
    current_user: User = Depends(require_admin),
):
    """Create a category with a generated code. Admin only."""
    if await Category.find_one(Category.name == category_in.name):
        raise HTTPException(status_code=400, detail="Category name exists.")

    code = format_code("CAT", await get_next_sequence_value("category"), width=3)
    category_obj = Category(name=category_in.name, description=category_in.description, category_code=code)
    try:
        await category_obj.insert()
    except DuplicateKeyError as e:
        raise HTTPException(status_code=400, detail="Category name exists.") from e

    logger.info(f"Category '{category_obj.name}' ({code}) created by '{current_user.email}'.")
    return category_response(category_obj)


@router.get("", response_model=List[Category.Response])
@limiter.limit(LIST_LIMIT)
async def read_categories(request: Request, skip: int = Query(0, ge=0), limit: int = Query(100, ge=1, le=500)):
    categories = await Category.find_all(skip=skip, limit=limit).sort("+name").to_list()
    return [category_response(c) for c in categories]
