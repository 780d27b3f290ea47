"""LMS Dashboard API config

Every setting has a safe default so the API boots (and reports the DB as
disconnected) even when the environment is incomplete.
"""

from __future__ import annotations

import os
import re
import logging
from typing import List, Optional

from sqlalchemy.engine import URL

# -----------------------------
# helpers
# -----------------------------
def _env(key: str, default: str = "") -> str:
    v = os.getenv(key)
    return default if v is None else str(v).strip()

def _env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None or str(v).strip() == "":
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}

def _env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or str(v).strip() == "":
        return default
    try:
        return int(str(v).strip())
    except Exception:
        return default

def _env_float(key: str, default: float) -> float:
    v = os.getenv(key)
    if v is None or str(v).strip() == "":
        return default
    try:
        return float(str(v).strip())
    except Exception:
        return default

def _env_list(key: str, default: Optional[List[str]] = None, sep: str = ",") -> List[str]:
    if default is None:
        default = []
    v = os.getenv(key)
    if v is None or str(v).strip() == "":
        return list(default)
    return [s.strip() for s in str(v).split(sep) if s.strip()]


# -----------------------------
# logging
# -----------------------------
LOG_LEVEL = _env("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("lms_dashboard")


# -----------------------------
# core app env
# -----------------------------
ENV = _env("ENV", _env("APP_ENV", "development"))
DEBUG = _env_bool("DEBUG", False)

HOST = _env("HOST", "0.0.0.0")
PORT = _env_int("PORT", 3001)
UVICORN_WORKERS = _env_int("UVICORN_WORKERS", 1)


# -----------------------------
# database
# -----------------------------
DB_ENABLED = _env_bool("DB_ENABLED", True)

DB_HOST = _env("DB_HOST", "localhost")
DB_PORT = _env_int("DB_PORT", 3306)
DB_USER = _env("DB_USER", "root")
DB_PASS = os.getenv("DB_PASS", "")
DB_NAME = _env("DB_NAME", "moodle")


def _database_url() -> str:
    url = _env("DATABASE_URL", "")
    if url:
        return url
    return URL.create(
        "mysql+pymysql",
        username=DB_USER or None,
        password=DB_PASS or None,
        host=DB_HOST,
        port=DB_PORT,
        database=DB_NAME,
        query={"charset": "utf8mb4"},
    ).render_as_string(hide_password=False)


DATABASE_URL = _database_url()

_PREFIX_RE = re.compile(r"^[A-Za-z0-9_]*$")


def _clean_prefix(raw: str) -> str:
    """Table prefix is interpolated into SQL text, so only identifier chars pass."""
    v = (raw or "").strip().strip('"').strip("'").strip()
    if _PREFIX_RE.match(v):
        return v
    logger.warning("Ignoring invalid DB_PREFIX value: %r", raw)
    return ""


# Moodle installs usually use "mdl_"; empty means bare table names.
DB_PREFIX = _clean_prefix(_env("DB_PREFIX", ""))

DB_POOL_SIZE = _env_int("DB_POOL_SIZE", 10)
DB_MAX_OVERFLOW = _env_int("DB_MAX_OVERFLOW", 0)
DB_POOL_TIMEOUT = _env_int("DB_POOL_TIMEOUT", 30)
DB_POOL_RECYCLE = _env_int("DB_POOL_RECYCLE", 1800)


# -----------------------------
# query limits
# -----------------------------
DEFAULT_QUERY_LIMIT = _env_int("DEFAULT_QUERY_LIMIT", 100)
MAX_QUERY_LIMIT = _env_int("MAX_QUERY_LIMIT", 1000)
DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = _env_int("MAX_PAGE_LIMIT", 100)
MAX_RECENT_LOGS = _env_int("MAX_RECENT_LOGS", 200)
LOGIN_ACTIVITY_MAX_DAYS = _env_int("LOGIN_ACTIVITY_MAX_DAYS", 30)
DEFAULT_REPORT_RANGE_DAYS = _env_int("DEFAULT_REPORT_RANGE_DAYS", 30)

# Calendar-day boundaries for daily series. Default is WIB (UTC+7).
REPORT_TZ_OFFSET_HOURS = _env_float("REPORT_TZ_OFFSET_HOURS", 7.0)


# -----------------------------
# custom reports
# -----------------------------
REPORTS_FILE = _env("REPORTS_FILE", os.path.join("data", "custom_reports.json"))


# -----------------------------
# cache / redis
# -----------------------------
REDIS_URL = _env("REDIS_URL", _env("REDIS_TLS_URL", ""))
OVERVIEW_CACHE_TTL_SECONDS = _env_int("OVERVIEW_CACHE_TTL_SECONDS", 60)


# -----------------------------
# http
# -----------------------------
MAX_REQUEST_BYTES = _env_int("MAX_REQUEST_BYTES", 256 * 1024)

ALLOWED_ORIGINS = _env_list(
    "ALLOWED_ORIGINS",
    default=["http://localhost:5173", "http://localhost:3000"],
)
