# rental_api/api/endpoints/pricelists.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status, Path, Body, Query, Request
from loguru import logger
from pymongo.errors import DuplicateKeyError

from rental_api.core.rate_limiter import limiter, LIST_LIMIT
from rental_api.core.security import get_current_active_user, require_admin
from rental_api.core.utils import parse_object_id
from rental_api.models.common import paginate, utcnow
from rental_api.models.enum import CustomerType
from rental_api.models.pricelist import Pricelist, PricelistPage, pricelist_response
from rental_api.models.user import User

router = APIRouter(tags=["Pricelists"])


async def get_pricelist_or_404(pricelist_id: str) -> Pricelist:
    pricelist = await Pricelist.get(parse_object_id(pricelist_id, "pricelist ID"))
    if not pricelist:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Pricelist '{pricelist_id}' not found.")
    return pricelist


def active_query() -> dict:
    now = utcnow()
    return {"validity.start_date": {"$lte": now}, "validity.end_date": {"$gte": now}}


@router.get("", response_model=PricelistPage)
@limiter.limit(LIST_LIMIT)
async def list_pricelists(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    region: Optional[str] = None,
    current_user: User = Depends(get_current_active_user),
):
    query = {"region": region} if region else {}
    total = await Pricelist.find(query).count()
    pricelists = await Pricelist.find(query).sort("-created_at").skip((page - 1) * limit).limit(limit).to_list()
    return PricelistPage(pricelists=[pricelist_response(p) for p in pricelists], pagination=paginate(page, limit, total))


@router.get("/active", response_model=List[Pricelist.Response])
async def list_active_pricelists(current_user: User = Depends(get_current_active_user)):
    pricelists = await Pricelist.find(active_query()).sort("-validity.start_date").to_list()
    return [pricelist_response(p) for p in pricelists]


@router.get("/customer-type/{customer_type}", response_model=List[Pricelist.Response])
async def list_pricelists_by_customer_type(
    customer_type: CustomerType = Path(...),
    current_user: User = Depends(get_current_active_user),
):
    query = active_query()
    query["target_customer_types"] = customer_type.value
    pricelists = await Pricelist.find(query).sort("-validity.start_date").to_list()
    return [pricelist_response(p) for p in pricelists]


@router.get("/region/{region}", response_model=List[Pricelist.Response])
async def list_pricelists_by_region(region: str = Path(...), current_user: User = Depends(get_current_active_user)):
    query = active_query()
    query["region"] = region
    pricelists = await Pricelist.find(query).sort("-validity.start_date").to_list()
    return [pricelist_response(p) for p in pricelists]


@router.get("/{pricelist_id}", response_model=Pricelist.Response)
async def read_pricelist(pricelist_id: str = Path(...), current_user: User = Depends(get_current_active_user)):
    return pricelist_response(await get_pricelist_or_404(pricelist_id))


@router.post("", response_model=Pricelist.Response, status_code=status.HTTP_201_CREATED)
async def create_pricelist(pricelist_in: Pricelist.Create = Body(...), current_user: User = Depends(require_admin)):
    if await Pricelist.find_one(Pricelist.pricelist_id == pricelist_in.pricelist_id):
        raise HTTPException(status_code=400, detail=f"Pricelist id '{pricelist_in.pricelist_id}' already exists.")
    pricelist = Pricelist(**pricelist_in.model_dump())
    try:
        await pricelist.insert()
    except DuplicateKeyError as e:
        raise HTTPException(status_code=400, detail=f"Pricelist id '{pricelist_in.pricelist_id}' already exists.") from e
    logger.info(f"Pricelist '{pricelist.pricelist_id}' created by '{current_user.email}'.")
    return pricelist_response(pricelist)


@router.put("/{pricelist_id}", response_model=Pricelist.Response)
async def update_pricelist(
    pricelist_id: str = Path(...),
    pricelist_in: Pricelist.Update = Body(...),
    current_user: User = Depends(require_admin),
):
    pricelist = await get_pricelist_or_404(pricelist_id)
    update_data = pricelist_in.model_dump(exclude_unset=True, exclude_none=True)
    if not update_data:
        raise HTTPException(status_code=400, detail="No update data provided.")
    update_data["updated_at"] = utcnow()
    await pricelist.update({"$set": update_data})
    logger.info(f"Pricelist {pricelist_id} updated by '{current_user.email}'.")
    return pricelist_response(await get_pricelist_or_404(pricelist_id))


@router.delete("/{pricelist_id}")
async def delete_pricelist(pricelist_id: str = Path(...), current_user: User = Depends(require_admin)):
    pricelist = await get_pricelist_or_404(pricelist_id)
    await pricelist.delete()
    logger.info(f"Pricelist {pricelist_id} deleted by '{current_user.email}'.")
    return {"message": "Pricelist deleted successfully"}
