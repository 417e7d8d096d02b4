"""
Request logging middleware.

Logs one structured record per HTTP request with method, path, status and
duration, tagged with a request id that is echoed back in ``X-Request-ID``.
"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from dora_tracker.utils.logging import get_logger

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request and its outcome."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"{request.method} {request.url.path} raised {type(e).__name__}",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                },
                exc_info=True
            )
            raise

        duration_ms = round((time.time() - start_time) * 1000, 2)
        extra = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }
        if response.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} {response.status_code}", extra=extra)
        elif response.status_code >= 400:
            logger.warning(f"{request.method} {request.url.path} {response.status_code}", extra=extra)
        else:
            logger.info(f"{request.method} {request.url.path} {response.status_code}", extra=extra)

        response.headers["X-Request-ID"] = request_id
        return response
