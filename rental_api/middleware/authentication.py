# rental_api/middleware/authentication.py
from typing import Optional, Set, Callable, Awaitable

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.security.utils import get_authorization_scheme_param
from jose import JWTError
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from rental_api.core.config import TOKEN_COOKIE_NAME
from rental_api.core.security import decode_access_token

# Paths that never require a token
PUBLIC_PATHS: Set[str] = {
    "/",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/ping-mongodb",
    "/api/health",
    "/api/auth/signup",
    "/api/auth/validate-otp",
    "/api/auth/login",
    "/api/auth/token",
    "/api/auth/logout",
    "/api/categories",
    "/api/products/public",
    "/api/stations",
    "/api/stations/nearest",
    "/api/stations/search",
}


def is_public_path(path: str, method: str = "GET") -> bool:
    path = path.rstrip("/") or "/"
    if path in PUBLIC_PATHS:
        # Writes to catalogue collections still need a token
        return method == "GET" or path.startswith("/api/auth") or path in ("/", "/ping-mongodb")
    if path.startswith("/docs") or path.startswith("/redoc"):
        return True
    if method == "GET" and path.startswith("/api/stations/"):
        return True
    return False


def _extract_token(request: Request) -> Optional[str]:
    authorization: Optional[str] = request.headers.get("Authorization")
    scheme, token = get_authorization_scheme_param(authorization or "")
    if authorization and scheme.lower() == "bearer" and token:
        return token
    return request.cookies.get(TOKEN_COOKIE_NAME)


class AuthMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        path = request.url.path
        request_id = getattr(request.state, "request_id", "N/A")

        if request.method == "OPTIONS" or is_public_path(path, request.method):
            logger.debug(f"RID:{request_id} Public path accessed: {path}. Skipping auth.")
            return await call_next(request)

        token = _extract_token(request)
        if not token:
            logger.warning(f"RID:{request_id} Auth failed: no token for protected path {path}.")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Not authenticated"},
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            token_data = decode_access_token(token)
        except JWTError as e:
            logger.warning(f"RID:{request_id} Auth failed: invalid token for path {path}. Error: {e}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or expired token"},
                headers={"WWW-Authenticate": "Bearer"},
            )

        request.state.user_id = token_data.user_id
        logger.debug(f"RID:{request_id} Auth successful for user '{token_data.user_id}' on {path}.")
        return await call_next(request)
