# rental_api/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Optional, List
import logging

from beanie import PydanticObjectId
from fastapi import Depends, HTTPException, status, Request, Response
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from rental_api.core.config import (
    SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, TOKEN_COOKIE_NAME, COOKIE_SECURE,
)
from rental_api.models.token import TokenData
from rental_api.models.user import User, UserRole

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# auto_error is off so the cookie can be used when no Authorization header is sent
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> TokenData:
    """Raises JWTError when the token is invalid, expired or has no subject."""
    payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    user_id = payload.get("sub")
    if user_id is None:
        raise JWTError("Subject ('sub') missing in token payload.")
    return TokenData(user_id=user_id)


def token_from_request(request: Request, header_token: Optional[str] = None) -> Optional[str]:
    return header_token or request.cookies.get(TOKEN_COOKIE_NAME)


def issue_token(user: User, response: Response) -> str:
    """Create a token for the user and set it as the httpOnly auth cookie."""
    access_token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
    response.set_cookie(
        key=TOKEN_COOKIE_NAME,
        value=access_token,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return access_token


def clear_token(response: Response) -> None:
    response.delete_cookie(key=TOKEN_COOKIE_NAME, httponly=True, secure=COOKIE_SECURE, samesite="lax")


async def get_current_user(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> User:
    """
    Resolve the user from the id set by AuthMiddleware, or decode the token
    (Bearer header first, then cookie) when the middleware did not run.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id: Optional[str] = getattr(request.state, "user_id", None)
    if not user_id:
        raw_token = token_from_request(request, token)
        if not raw_token:
            raise credentials_exception
        try:
            user_id = decode_access_token(raw_token).user_id
        except JWTError:
            logger.warning("Token decode failed in get_current_user dependency.")
            raise credentials_exception

    if not PydanticObjectId.is_valid(user_id):
        raise credentials_exception

    user = await User.get(PydanticObjectId(user_id))
    if user is None:
        logger.warning(f"User '{user_id}' from token not found in database.")
        raise credentials_exception
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        logger.warning(f"Access denied for inactive user '{current_user.email}'.")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is not verified")
    return current_user


def require_role(required_role: UserRole):
    """Dependency factory: the current user must have exactly this role."""
    async def role_checker(current_user: User = Depends(get_current_active_user)):
        if current_user.role != required_role:
            logger.warning(
                f"Forbidden: User '{current_user.email}' with role '{current_user.role.value}' "
                f"attempted action requiring role '{required_role.value}'."
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Operation not permitted. Required role: {required_role.value}",
            )
        return current_user
    return role_checker


def require_roles(required_roles: List[UserRole]):
    """Dependency factory: the current user must have one of these roles."""
    async def roles_checker(current_user: User = Depends(get_current_active_user)):
        if current_user.role not in required_roles:
            logger.warning(
                f"Forbidden: User '{current_user.email}' with role '{current_user.role.value}' "
                f"attempted action requiring one of roles: {[r.value for r in required_roles]}."
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Operation not permitted. Required roles: {[r.value for r in required_roles]}",
            )
        return current_user
    return roles_checker


require_admin = require_role(UserRole.ADMIN)
require_owner_or_admin = require_roles([UserRole.OWNER, UserRole.ADMIN])
