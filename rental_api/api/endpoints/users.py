# rental_api/api/endpoints/users.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status, Path, Body, Query, Request
from loguru import logger
from pydantic import BaseModel

from rental_api.core.rate_limiter import limiter, LIST_LIMIT, USER_UPDATE_LIMIT, PASSWORD_CHANGE_LIMIT
from rental_api.core.security import (
    get_current_active_user,
    get_password_hash,
    require_admin,
    verify_password,
)
from rental_api.core.utils import parse_object_id
from rental_api.models.common import Pagination, paginate, utcnow
from rental_api.models.enum import UserRole, CustomerType
from rental_api.models.user import User, user_response

# Self-service routes; must be included before admin_router so /profile is not read as a user id
router = APIRouter(tags=["Users"])

admin_router = APIRouter(
    tags=["Users - Admin"],
    dependencies=[Depends(require_admin)],
)


class UserPage(BaseModel):
    users: List[User.Response]
    pagination: Pagination


async def get_user_or_404(user_id: str) -> User:
    user = await User.get(parse_object_id(user_id, "user ID"))
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User with ID '{user_id}' not found")
    return user


async def _set(user: User, update_data: dict) -> User:
    update_data["updated_at"] = utcnow()
    await user.update({"$set": update_data})
    return await get_user_or_404(str(user.id))


# --- Current user ---
@router.put("/profile", response_model=User.Response)
@limiter.limit(USER_UPDATE_LIMIT)
async def update_profile(
    request: Request,
    profile_in: User.ProfileUpdate = Body(...),
    current_user: User = Depends(get_current_active_user),
):
    update_data = profile_in.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No update data provided.")
    updated = await _set(current_user, update_data)
    logger.info(f"User '{current_user.email}' updated profile fields {sorted(update_data)}.")
    return user_response(updated)


@router.put("/password")
@limiter.limit(PASSWORD_CHANGE_LIMIT)
async def change_password(
    request: Request,
    password_in: User.PasswordChange = Body(...),
    current_user: User = Depends(get_current_active_user),
):
    if not verify_password(password_in.current_password, current_user.hashed_password):
        logger.warning(f"Password change for '{current_user.email}' rejected: wrong current password.")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect.")
    if password_in.new_password == password_in.current_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="New password must differ from the current one.")
    await _set(current_user, {"hashed_password": get_password_hash(password_in.new_password)})
    logger.info(f"User '{current_user.email}' changed password.")
    return {"message": "Password updated successfully"}


# --- Admin ---
@admin_router.get("", response_model=UserPage)
@limiter.limit(LIST_LIMIT)
async def read_users(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    role: Optional[UserRole] = None,
    customer_type: Optional[CustomerType] = None,
    is_active: Optional[bool] = None,
):
    query = {}
    if role:
        query["role"] = role.value
    if customer_type:
        query["customer_type"] = customer_type.value
    if is_active is not None:
        query["is_active"] = is_active
    total = await User.find(query).count()
    users = await User.find(query).sort("+email").skip((page - 1) * limit).limit(limit).to_list()
    return UserPage(users=[user_response(u) for u in users], pagination=paginate(page, limit, total))


@admin_router.get("/{user_id}", response_model=User.Response)
async def read_user(user_id: str = Path(..., description="The ID of the user to retrieve")):
    return user_response(await get_user_or_404(user_id))


@admin_router.put("/{user_id}", response_model=User.Response)
@limiter.limit(USER_UPDATE_LIMIT)
async def update_user(
    request: Request,
    user_id: str = Path(...),
    user_in: User.AdminUpdate = Body(...),
    current_admin: User = Depends(require_admin),
):
    """Set role, customer type, region or active flag."""
    user = await get_user_or_404(user_id)
    update_data = user_in.model_dump(exclude_unset=True, exclude_none=True)
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No update data provided.")
    if user.id == current_admin.id and (
        update_data.get("role", UserRole.ADMIN) != UserRole.ADMIN or update_data.get("is_active") is False
    ):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Admins cannot demote or disable themselves.")
    for key in ("role", "customer_type"):
        if update_data.get(key) is not None:
            update_data[key] = update_data[key].value
    updated = await _set(user, update_data)
    logger.info(f"Admin '{current_admin.email}' updated user '{user.email}': {update_data}")
    return user_response(updated)


@admin_router.patch("/{user_id}/disable", response_model=User.Response)
async def disable_user(user_id: str = Path(...), current_admin: User = Depends(require_admin)):
    user = await get_user_or_404(user_id)
    if user.id == current_admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Admins cannot disable themselves.")
    if not user.is_active:
        logger.info(f"User {user_id} already disabled.")
        return user_response(user)
    logger.info(f"Admin '{current_admin.email}' disabled user '{user.email}'.")
    return user_response(await _set(user, {"is_active": False}))


@admin_router.patch("/{user_id}/enable", response_model=User.Response)
async def enable_user(user_id: str = Path(...), current_admin: User = Depends(require_admin)):
    user = await get_user_or_404(user_id)
    if user.is_active:
        logger.info(f"User {user_id} already enabled.")
        return user_response(user)
    logger.info(f"Admin '{current_admin.email}' enabled user '{user.email}'.")
    return user_response(await _set(user, {"is_active": True}))
