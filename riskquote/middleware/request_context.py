"""
Request Context Middleware.

Every log line written while serving a request carries:
- request_id: the caller's X-Request-ID when usable, otherwise a fresh UUID4
- user_id: the user addressed by a /api/v1/{risk,alerts,tracking}/{user_id} path
- trigger: the recompute source a write endpoint causes (refresh, health_tracking)

The request id and timing are echoed back as X-Request-ID / X-Response-Time.
"""

import re
import time
import uuid
from typing import Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from riskquote.schemas.events import ChangedEntity

logger = structlog.get_logger(__name__)

MAX_REQUEST_ID_LENGTH = 64

_USER_PATH = re.compile(r"^/api/v1/(?P<resource>risk|alerts|tracking)/(?P<user_id>[^/]+)(?P<rest>/.*)?$")
_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]+$")

# Paths polled by health checks; logged at debug level
_QUIET_PATHS = {"/health"}


def resolve_request_id(header: Optional[str]) -> str:
    """Accept the caller's id when it is short and printable."""
    if header and len(header) <= MAX_REQUEST_ID_LENGTH and _REQUEST_ID.match(header):
        return header
    return str(uuid.uuid4())


def request_scope(method: str, path: str) -> dict[str, str]:
    """
    Log context derived from the route: the addressed user and, for POSTs
    that schedule a recompute, its trigger source.
    """
    match = _USER_PATH.match(path)
    if match is None:
        return {}

    scope = {"user_id": match["user_id"]}
    if method == "POST":
        if match["resource"] == "risk" and match["rest"] == "/refresh":
            scope["trigger"] = ChangedEntity.REFRESH.value
        elif match["resource"] == "tracking" and not match["rest"]:
            scope["trigger"] = ChangedEntity.HEALTH_TRACKING.value
    return scope


class RequestContextMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = resolve_request_id(request.headers.get("X-Request-ID"))
        request.state.request_id = request_id
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=path,
            **request_scope(request.method, path),
        )

        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms}ms"

        if path in _QUIET_PATHS:
            logger.debug("request_completed", status=response.status_code, elapsed_ms=elapsed_ms)
        elif response.status_code >= 500:
            logger.warning("request_failed", status=response.status_code, elapsed_ms=elapsed_ms)
        else:
            logger.info("request_completed", status=response.status_code, elapsed_ms=elapsed_ms)
        return response
