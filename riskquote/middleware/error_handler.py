"""
Error handling for the HTTP surface.

- RecomputeError → 422 with the machine-readable reason
  (incomplete_profile, unsupported_rating_attribute)
- Anything else → generic 500. Its error_id is the request id bound by
  RequestContextMiddleware, so the client-visible id finds every log line
  of the failed request. Stack traces never reach the client.
"""

import traceback
import uuid
from typing import Optional

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from riskquote.config import settings
from riskquote.errors import RecomputeError, UnsupportedRatingAttributeError

logger = structlog.get_logger(__name__)


async def recompute_error_handler(request: Request, exc: RecomputeError) -> JSONResponse:
    """Terminal for this recompute; the last good analysis is still served."""
    body: dict = {
        "error": str(exc),
        "reason": exc.reason,
        "status": 422,
    }
    if isinstance(exc, UnsupportedRatingAttributeError):
        body["attribute"] = exc.attribute
        body["allowed"] = exc.allowed
    logger.info("recompute_error_returned", path=request.url.path, reason=exc.reason)
    return JSONResponse(status_code=422, content=body)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Outermost middleware: turns anything a route did not handle into

    {"error": "...", "error_id": "<request id>", "status": 500}
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            request_id: Optional[str] = getattr(request.state, "request_id", None)
            error_id = request_id or str(uuid.uuid4())

            logger.error(
                "unhandled_exception",
                error_id=error_id,
                path=request.url.path,
                method=request.method,
                error=str(exc),
                traceback=traceback.format_exc(),
            )

            body: dict = {
                "error": "An internal error occurred. Please try again later.",
                "error_id": error_id,
                "status": 500,
            }
            if settings.debug:
                body["debug_hint"] = type(exc).__name__

            return JSONResponse(status_code=500, content=body)
