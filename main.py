from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import ALLOWED_ORIGINS, ENV, HOST, MAX_REQUEST_BYTES, PORT, UVICORN_WORKERS
from db import QueryExecutionError, db_health
from guards import RequestLogMiddleware, RequestSizeLimitMiddleware
from redis_store import redis_health
from report_store import ReportNotFoundError, ReportValidationError
from schemas import HealthResponse
from shared_engine import dispose_engine

from courses_router import router as courses_router
from dashboard_router import router as dashboard_router
from logs_router import router as logs_router
from report_stats_router import router as report_stats_router
from reports_router import router as reports_router
from users_router import router as users_router

logger = logging.getLogger("lms_dashboard.main")

_STATUS_CODES = {
    400: "VALIDATION_ERROR",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    413: "PAYLOAD_TOO_LARGE",
}


def _error(status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    content: Dict[str, Any] = {"ok": False, "error": code, "message": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


# ----------------------
# Lifecycle
# ----------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    health = db_health()
    if health.get("connected"):
        logger.info("Database connected (env=%s)", ENV)
    else:
        logger.warning("Database unavailable at startup: %s", health.get("reason"))
    try:
        yield
    finally:
        dispose_engine()


app = FastAPI(title="LMS Dashboard API", version="1.0", lifespan=lifespan)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=MAX_REQUEST_BYTES)
app.add_middleware(RequestLogMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)


# ----------------------
# Error mapping
# ----------------------
@app.exception_handler(ReportValidationError)
async def _report_validation_error(request: Request, exc: ReportValidationError):
    return _error(400, "VALIDATION_ERROR", str(exc))


@app.exception_handler(ReportNotFoundError)
async def _report_not_found(request: Request, exc: ReportNotFoundError):
    return _error(404, "NOT_FOUND", "Report not found")


@app.exception_handler(QueryExecutionError)
async def _query_failed(request: Request, exc: QueryExecutionError):
    logger.warning("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
    return _error(500, "QUERY_FAILED", exc.message, exc.details)


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    code = _STATUS_CODES.get(exc.status_code, "INTERNAL_ERROR" if exc.status_code >= 500 else "HTTP_ERROR")
    return _error(exc.status_code, code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def _request_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    message = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg") or "Invalid request")
    return _error(400, "VALIDATION_ERROR", message)


@app.exception_handler(Exception)
async def _unhandled(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "INTERNAL_ERROR", "Internal server error")


# ----------------------
# Routes
# ----------------------
@app.get("/api/health", response_model=HealthResponse)
def health():
    db = db_health()
    return {
        "status": "OK" if db.get("connected") else "DEGRADED",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "connected" if db.get("connected") else "disconnected",
        "db": db,
        "cache": redis_health(),
    }


# Statistics first: /api/reports/user-statistics must not match /api/reports/{report_id}.
app.include_router(dashboard_router)
app.include_router(courses_router)
app.include_router(users_router)
app.include_router(logs_router)
app.include_router(report_stats_router)
app.include_router(reports_router)


def run() -> None:
    import uvicorn

    uvicorn.run("main:app", host=HOST, port=PORT, workers=UVICORN_WORKERS)


if __name__ == "__main__":
    run()
