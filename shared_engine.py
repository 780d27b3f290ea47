"""shared_engine.py - the one pooled SQLAlchemy engine for the LMS database.

Every store reaches the database through `get_engine()`. The pool is bounded
(DB_POOL_SIZE + DB_MAX_OVERFLOW); callers that arrive while it is saturated
wait up to DB_POOL_TIMEOUT seconds inside SQLAlchemy's own queue.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from config import (
    DATABASE_URL,
    DB_ENABLED,
    DB_MAX_OVERFLOW,
    DB_POOL_RECYCLE,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
)

logger = logging.getLogger("lms_dashboard.shared_engine")

_ENGINE: Optional[Engine] = None


def get_engine() -> Optional[Engine]:
    """Return the shared engine, or None if the DB is disabled/unconfigured."""
    global _ENGINE

    if not DB_ENABLED or not DATABASE_URL:
        return None

    if _ENGINE is not None:
        return _ENGINE

    try:
        _ENGINE = create_engine(
            DATABASE_URL,
            pool_pre_ping=True,
            pool_size=DB_POOL_SIZE,
            max_overflow=DB_MAX_OVERFLOW,
            pool_recycle=DB_POOL_RECYCLE,
            pool_timeout=DB_POOL_TIMEOUT,
        )
        logger.info(
            "Shared DB engine created (pool_size=%d, max_overflow=%d)",
            DB_POOL_SIZE,
            DB_MAX_OVERFLOW,
        )
        return _ENGINE
    except Exception:
        logger.exception("Failed to create shared DB engine")
        return None


def dispose_engine() -> None:
    global _ENGINE
    if _ENGINE is not None:
        _ENGINE.dispose()
        _ENGINE = None
