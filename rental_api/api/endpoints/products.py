# rental_api/api/endpoints/products.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status, Path, Body, Query, Request
from loguru import logger
from pymongo import ReturnDocument

from rental_api.api.endpoints.categories import get_category_or_404
from rental_api.core.lifecycle import ACTIVE_STATUSES
from rental_api.core.rate_limiter import limiter, LIST_LIMIT
from rental_api.core.security import get_current_active_user, require_owner_or_admin
from rental_api.core.utils import get_next_sequence_value, format_code, parse_object_id
from rental_api.models.booking import Booking
from rental_api.models.common import paginate, utcnow
from rental_api.models.enum import ProductStatus, UserRole
from rental_api.models.product import Product, ProductPage, product_response
from rental_api.models.user import User

router = APIRouter(tags=["Products"])


async def get_product_or_404(product_id: str) -> Product:
    product = await Product.get(parse_object_id(product_id, "product ID"))
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Product with ID '{product_id}' not found.")
    return product


def ensure_can_manage(product: Product, user: User) -> None:
    if user.role != UserRole.ADMIN and product.owner_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the product owner or an admin can do this.")


async def _page(query: dict, page: int, limit: int) -> ProductPage:
    total = await Product.find(query).count()
    products = await Product.find(query).sort("-created_at").skip((page - 1) * limit).limit(limit).to_list()
    return ProductPage(products=[product_response(p) for p in products], pagination=paginate(page, limit, total))


def _filters(search: Optional[str], category_id: Optional[str]) -> dict:
    query = {}
    if search:
        query["$text"] = {"$search": search}
    if category_id:
        query["category_id"] = parse_object_id(category_id, "category ID")
    return query


@router.get("", response_model=ProductPage)
@limiter.limit(LIST_LIMIT)
async def list_products(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    category_id: Optional[str] = None,
    product_status: Optional[ProductStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_active_user),
):
    query = _filters(search, category_id)
    if product_status:
        query["status"] = product_status.value
    return await _page(query, page, limit)


@router.get("/public", response_model=ProductPage)
@limiter.limit(LIST_LIMIT)
async def list_public_products(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    category_id: Optional[str] = None,
):
    """Active products, no login required."""
    query = _filters(search, category_id)
    query["status"] = ProductStatus.ACTIVE.value
    return await _page(query, page, limit)


@router.get("/my", response_model=ProductPage)
async def list_my_products(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_owner_or_admin),
):
    return await _page({"owner_id": current_user.id}, page, limit)


@router.get("/{product_id}", response_model=Product.Response)
async def read_product(product_id: str = Path(...), current_user: User = Depends(get_current_active_user)):
    return product_response(await get_product_or_404(product_id))


@router.post("", response_model=Product.Response, status_code=status.HTTP_201_CREATED)
async def create_product(
    product_in: Product.Create = Body(...),
    current_user: User = Depends(require_owner_or_admin),
):
    category_id = None
    if product_in.category_id:
        category_id = (await get_category_or_404(product_in.category_id)).id

    code = format_code("PRD", await get_next_sequence_value("product"))
    product = Product(
        **product_in.model_dump(exclude={"category_id", "images"}),
        images=[str(url) for url in product_in.images],
        product_code=code,
        owner_id=current_user.id,
        category_id=category_id,
        units_available=product_in.total_units,
        units_with_customer=0,
    )
    await product.insert()
    logger.info(f"Product '{product.name}' ({code}) created by '{current_user.email}'.")
    return product_response(product)


@router.put("/{product_id}", response_model=Product.Response)
async def update_product(
    product_id: str = Path(...),
    product_in: Product.Update = Body(...),
    current_user: User = Depends(require_owner_or_admin),
):
    product = await get_product_or_404(product_id)
    ensure_can_manage(product, current_user)

    update_data = product_in.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=400, detail="No update data provided.")
    if "category_id" in update_data:
        new_category = update_data.pop("category_id")
        update_data["category_id"] = (await get_category_or_404(new_category)).id if new_category else None
    if "images" in update_data and update_data["images"] is not None:
        update_data["images"] = [str(url) for url in product_in.images]

    update_data["updated_at"] = utcnow()
    await product.update({"$set": update_data})
    logger.info(f"Product {product_id} updated by '{current_user.email}'. Fields: {list(update_data.keys())}")
    return product_response(await get_product_or_404(product_id))


@router.delete("/{product_id}", response_model=Product.Response)
async def delete_product(product_id: str = Path(...), current_user: User = Depends(require_owner_or_admin)):
    """Soft delete: the product is marked inactive and hidden from public listings."""
    product = await get_product_or_404(product_id)
    ensure_can_manage(product, current_user)

    if product.status != ProductStatus.INACTIVE:
        product.status = ProductStatus.INACTIVE
        product.updated_at = utcnow()
        await product.save()
        logger.info(f"Product {product_id} marked inactive by '{current_user.email}'.")
    return product_response(product)


@router.patch("/{product_id}/units", response_model=Product.Response)
async def update_product_units(
    product_id: str = Path(...),
    units_in: Product.UnitsUpdate = Body(...),
    current_user: User = Depends(require_owner_or_admin),
):
    """
    Change the size of the unit pool. Units currently with customers stay with
    them; the new total cannot go below them or below units held by future reservations.
    """
    product = await get_product_or_404(product_id)
    ensure_can_manage(product, current_user)

    now = utcnow()
    reserved = await Booking.find({
        "product_id": product.id,
        "status": {"$in": [s.value for s in ACTIVE_STATUSES]},
        "end_date": {"$gt": now},
    }).to_list()
    held = max(product.units_with_customer, sum(b.unit_count for b in reserved))
    if units_in.total_units < held:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot reduce total units below {held} committed to bookings.",
        )

    delta = units_in.total_units - product.total_units
    updated = await Product.get_motor_collection().find_one_and_update(
        {"_id": product.id, "total_units": product.total_units},
        {"$inc": {"total_units": delta, "units_available": delta}, "$set": {"updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Product units changed concurrently; retry.")
    logger.info(f"Product {product_id} total units {product.total_units} -> {units_in.total_units}.")
    return product_response(await get_product_or_404(product_id))
