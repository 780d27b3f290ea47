import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

logger = logging.getLogger("lms_dashboard.http")


def _now() -> float:
    return time.time()


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next):
        cl = request.headers.get("content-length")
        if cl:
            try:
                too_large = int(cl) > self.max_bytes
            except ValueError:
                # Malformed content-length; the body parser will reject it if it matters.
                too_large = False
            if too_large:
                return JSONResponse(
                    status_code=413,
                    content={"ok": False, "error": "PAYLOAD_TOO_LARGE", "message": "Request body too large"},
                )
        return await call_next(request)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One log line per request: method, path, status, latency."""

    async def dispatch(self, request: Request, call_next):
        start = _now()
        response = await call_next(request)
        latency_ms = int((_now() - start) * 1000)
        logger.info("%s %s -> %d (%dms)", request.method, request.url.path, response.status_code, latency_ms)
        return response
