# rental_api/api/endpoints/stations.py
import re
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status, Path, Body, Query, Request
from loguru import logger

from rental_api.core.rate_limiter import limiter, LIST_LIMIT
from rental_api.core.security import require_owner_or_admin
from rental_api.core.utils import parse_object_id
from rental_api.models.common import paginate, utcnow
from rental_api.models.enum import StationStatus, UserRole
from rental_api.models.ev_station import EVStation, StationPage, station_response
from rental_api.models.user import User

router = APIRouter(tags=["EV Stations"])


async def get_station_or_404(station_id: str) -> EVStation:
    station = await EVStation.get(parse_object_id(station_id, "station ID"))
    if not station:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Station '{station_id}' not found.")
    return station


@router.get("", response_model=StationPage)
@limiter.limit(LIST_LIMIT)
async def list_stations(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    city: Optional[str] = None,
    station_status: Optional[StationStatus] = Query(None, alias="status"),
):
    query = {}
    if city:
        query["location.address.city"] = {"$regex": f"^{re.escape(city)}$", "$options": "i"}
    if station_status:
        query["status"] = station_status.value
    total = await EVStation.find(query).count()
    stations = await EVStation.find(query).sort("+name").skip((page - 1) * limit).limit(limit).to_list()
    return StationPage(stations=[station_response(s) for s in stations], pagination=paginate(page, limit, total))


@router.get("/nearest", response_model=List[EVStation.Response])
@limiter.limit(LIST_LIMIT)
async def nearest_stations(
    request: Request,
    lng: float = Query(..., ge=-180, le=180),
    lat: float = Query(..., ge=-90, le=90),
    max_distance: int = Query(10000, ge=1, description="Maximum distance in meters"),
    limit: int = Query(10, ge=1, le=50),
):
    """Active stations ordered by distance using the 2dsphere index."""
    pipeline = [
        {"$geoNear": {
            "near": {"type": "Point", "coordinates": [lng, lat]},
            "distanceField": "distance_meters",
            "maxDistance": max_distance,
            "query": {"status": StationStatus.ACTIVE.value},
            "spherical": True,
        }},
        {"$limit": limit},
    ]
    raw = await EVStation.get_motor_collection().aggregate(pipeline).to_list(length=limit)
    results = []
    for doc in raw:
        distance = doc.pop("distance_meters", None)
        results.append(station_response(EVStation.model_validate(doc), distance_meters=round(distance, 1)))
    return results


@router.get("/search", response_model=List[EVStation.Response])
@limiter.limit(LIST_LIMIT)
async def search_stations(request: Request, q: str = Query(..., min_length=1), limit: int = Query(20, ge=1, le=100)):
    stations = await EVStation.find({"$text": {"$search": q}}).limit(limit).to_list()
    return [station_response(s) for s in stations]


@router.get("/{station_id}", response_model=EVStation.Response)
async def read_station(station_id: str = Path(...)):
    return station_response(await get_station_or_404(station_id))


@router.post("", response_model=EVStation.Response, status_code=status.HTTP_201_CREATED)
async def create_station(station_in: EVStation.Create = Body(...), current_user: User = Depends(require_owner_or_admin)):
    station = EVStation(**station_in.model_dump(), owner_id=current_user.id)
    await station.insert()
    logger.info(f"Station '{station.name}' created by '{current_user.email}'.")
    return station_response(station)


@router.put("/{station_id}", response_model=EVStation.Response)
async def update_station(
    station_id: str = Path(...),
    station_in: EVStation.Update = Body(...),
    current_user: User = Depends(require_owner_or_admin),
):
    station = await get_station_or_404(station_id)
    if current_user.role != UserRole.ADMIN and station.owner_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the station owner or an admin can update it.")
    update_data = station_in.model_dump(exclude_unset=True, exclude_none=True)
    if not update_data:
        raise HTTPException(status_code=400, detail="No update data provided.")
    update_data["updated_at"] = utcnow()
    await station.update({"$set": update_data})
    logger.info(f"Station {station_id} updated by '{current_user.email}'.")
    return station_response(await get_station_or_404(station_id))
