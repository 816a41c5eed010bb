# rental_api/middleware/logging.py
import re
import time
import uuid
from typing import Callable, Awaitable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

REQUEST_ID_HEADER = "X-Request-ID"
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{8,64}$")

# Polled by load balancers and uptime checks
QUIET_PATHS = {"/api/health", "/ping-mongodb"}


def resolve_request_id(request: Request) -> str:
    """Reuse the caller's request id when it looks sane, otherwise mint one."""
    incoming = request.headers.get(REQUEST_ID_HEADER, "")
    if _VALID_REQUEST_ID.match(incoming):
        return incoming
    return str(uuid.uuid4())


def level_for(path: str, status_code: int) -> str:
    if status_code >= 500:
        return "ERROR"
    if status_code >= 400:
        return "WARNING"
    return "DEBUG" if path in QUIET_PATHS else "INFO"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request with a request id, the authenticated user (when the
    auth middleware resolved one), status and duration. The id is bound to
    every log line emitted while handling the request and echoed back in
    the X-Request-ID header.
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = resolve_request_id(request)
        request.state.request_id = request_id
        path = request.url.path
        start_time = time.perf_counter()

        with logger.contextualize(request_id=request_id):
            client = request.client.host if request.client else "unknown"
            logger.log(
                "DEBUG" if path in QUIET_PATHS else "INFO",
                f"RID:{request_id} START {request.method} {path} Client:{client}",
            )
            try:
                response = await call_next(request)
            except Exception as e:
                duration = (time.perf_counter() - start_time) * 1000
                logger.opt(exception=e).error(
                    f"RID:{request_id} FAILED {request.method} {path} Error:{e} Duration:{duration:.2f}ms"
                )
                raise

            duration = (time.perf_counter() - start_time) * 1000
            user_id = getattr(request.state, "user_id", None) or "anonymous"
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.log(
                level_for(path, response.status_code),
                f"RID:{request_id} END {request.method} {path} User:{user_id} "
                f"Status:{response.status_code} Duration:{duration:.2f}ms",
            )
        return response
