"""
db.py - Query executor for the LMS database.

- run_query(): developer-authored SQL templates, values bound as :named params.
- run_raw_query(): operator-authored ad-hoc SQL, sent to the driver verbatim.
- Neither ever raises: driver failures come back as QueryResult(success=False).
- Connections come from the shared pool and are returned on every exit path.
  Nothing is ever committed; closing the connection rolls back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool

from config import DB_PREFIX
from shared_engine import get_engine

logger = logging.getLogger("lms_dashboard.db")

DB_NOT_CONFIGURED = "Database is disabled or DATABASE_URL is missing/invalid"


@dataclass
class QueryResult:
    success: bool
    rows: List[Dict[str, Any]] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None


class QueryExecutionError(RuntimeError):
    """A fixed (developer-authored) query failed in the database."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


def table(name: str) -> str:
    """Prefixed table name. DB_PREFIX is validated in config."""
    return f"{DB_PREFIX}{name}"


# -----------------------------
# Row normalization
# -----------------------------


def _normalize_value(v: Any) -> Any:
    if isinstance(v, Decimal):
        if v == v.to_integral_value():
            return int(v)
        return float(v)
    if isinstance(v, (bytes, bytearray)):
        return bytes(v).decode("utf-8", errors="replace")
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    return v


def _normalize_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(k): _normalize_value(v) for k, v in row.items()}


def _error_message(e: Exception) -> str:
    # DBAPIError wraps the driver exception; its message is the useful part.
    orig = getattr(e, "orig", None)
    if orig is not None:
        return str(orig)
    return str(e)


# -----------------------------
# Execution
# -----------------------------


def run_query(sql: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
    """Execute a fixed SQL template with bound parameters."""
    engine = get_engine()
    if engine is None:
        return QueryResult(success=False, error=DB_NOT_CONFIGURED)

    try:
        with engine.connect() as conn:
            result = conn.execute(text(sql), params or {})
            columns = list(result.keys())
            rows = [_normalize_row(r) for r in result.mappings().all()]
        return QueryResult(success=True, rows=rows, columns=columns)
    except SQLAlchemyError as e:
        msg = _error_message(e)
        logger.warning("Query error: %s", msg)
        return QueryResult(success=False, error=msg)
    except Exception as e:
        logger.exception("Unexpected query failure")
        return QueryResult(success=False, error=str(e))


def run_raw_query(sql: str) -> QueryResult:
    """Execute operator SQL exactly as written (no placeholder processing).

    Callers must pass it through query_guard first.
    """
    engine = get_engine()
    if engine is None:
        return QueryResult(success=False, error=DB_NOT_CONFIGURED)

    try:
        with engine.connect() as conn:
            # no_parameters: cursor.execute(sql) without a params collection,
            # so '%' and ':' inside literals are left alone by the driver.
            result = conn.execution_options(no_parameters=True).exec_driver_sql(sql)
            if not result.returns_rows:
                return QueryResult(success=True)
            columns = list(result.keys())
            rows = [_normalize_row(r) for r in result.mappings().all()]
        return QueryResult(success=True, rows=rows, columns=columns)
    except SQLAlchemyError as e:
        msg = _error_message(e)
        logger.warning("Ad-hoc query error: %s", msg)
        return QueryResult(success=False, error=msg)
    except Exception as e:
        logger.exception("Unexpected ad-hoc query failure")
        return QueryResult(success=False, error=str(e))


def require_rows(result: QueryResult, message: str) -> List[Dict[str, Any]]:
    """Rows of a successful result, else QueryExecutionError."""
    if not result.success:
        raise QueryExecutionError(message, result.error)
    return result.rows


def require_scalar(result: QueryResult, message: str, key: str = "total") -> int:
    rows = require_rows(result, message)
    if not rows:
        return 0
    try:
        return int(rows[0].get(key) or 0)
    except (TypeError, ValueError):
        return 0


# -----------------------------
# Health
# -----------------------------


def db_health() -> Dict[str, Any]:
    engine = get_engine()
    if engine is None:
        return {"enabled": False, "connected": False, "reason": DB_NOT_CONFIGURED}

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        out: Dict[str, Any] = {"enabled": True, "connected": True}
        pool = engine.pool
        # StaticPool / NullPool have no size accounting.
        if isinstance(pool, QueuePool):
            out.update(
                {
                    "pool_size": pool.size(),
                    "checked_in": pool.checkedin(),
                    "checked_out": pool.checkedout(),
                    "overflow": pool.overflow(),
                }
            )
        return out
    except SQLAlchemyError as e:
        return {"enabled": True, "connected": False, "reason": _error_message(e)}


__all__ = [
    "QueryResult",
    "QueryExecutionError",
    "table",
    "run_query",
    "run_raw_query",
    "require_rows",
    "require_scalar",
    "db_health",
]
