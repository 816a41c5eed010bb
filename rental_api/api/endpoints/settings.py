# rental_api/api/endpoints/settings.py
from fastapi import APIRouter, Depends, HTTPException, status, Body
from loguru import logger

from rental_api.core.security import get_current_active_user, require_admin
from rental_api.models.common import utcnow
from rental_api.models.settings import (
    AppSettings,
    NotificationSettings,
    PenaltySettings,
    get_settings,
    merge_penalty_settings,
    settings_response,
)
from rental_api.models.user import User

router = APIRouter(tags=["Settings"])


@router.get("", response_model=AppSettings.Response)
async def read_settings(current_user: User = Depends(get_current_active_user)):
    return settings_response(await get_settings())


@router.get("/stats", response_model=AppSettings.Stats)
async def read_settings_stats(current_user: User = Depends(require_admin)):
    settings = await get_settings()
    return AppSettings.Stats(
        penalty_settings=settings.penalty,
        notification_settings=settings.notifications,
        last_updated=settings.updated_at,
    )


@router.get("/penalty", response_model=PenaltySettings)
async def read_penalty_settings(current_user: User = Depends(get_current_active_user)):
    return (await get_settings()).penalty


@router.put("/penalty", response_model=PenaltySettings)
async def update_penalty_settings(
    penalty_in: AppSettings.PenaltyUpdate = Body(...),
    current_user: User = Depends(require_admin),
):
    settings = await get_settings()
    try:
        merged = merge_penalty_settings(settings.penalty, penalty_in)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    settings.penalty = merged
    settings.updated_at = utcnow()
    await settings.save()
    logger.info(f"Penalty settings updated by '{current_user.email}': {merged.model_dump()}")
    return settings.penalty


@router.put("/notifications", response_model=NotificationSettings)
async def update_notification_settings(
    notifications_in: AppSettings.NotificationUpdate = Body(...),
    current_user: User = Depends(require_admin),
):
    settings = await get_settings()
    changes = notifications_in.model_dump(exclude_unset=True, exclude_none=True)
    settings.notifications = settings.notifications.model_copy(update=changes)
    settings.updated_at = utcnow()
    await settings.save()
    logger.info(f"Notification settings updated by '{current_user.email}': {changes}")
    return settings.notifications


@router.post("/reset", response_model=AppSettings.Response)
async def reset_settings(current_user: User = Depends(require_admin)):
    settings = await get_settings()
    settings.penalty = PenaltySettings()
    settings.notifications = NotificationSettings()
    settings.updated_at = utcnow()
    await settings.save()
    logger.warning(f"Settings reset to defaults by '{current_user.email}'.")
    return settings_response(settings)
