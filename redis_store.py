# redis_store.py
"""Optional Redis JSON cache.

Only short-lived derived values live here (dashboard counters). Every call
degrades to a cache miss when REDIS_URL is unset or Redis is unreachable.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import redis

from config import REDIS_URL

logger = logging.getLogger("lms_dashboard.redis_store")

KEY_PREFIX = "lms_dashboard"

# A dead cache must not stall a dashboard request.
SOCKET_TIMEOUT_SECONDS = 0.5

_client: Optional[redis.Redis] = None


def cache_key(*parts: Any) -> str:
    return ":".join([KEY_PREFIX, *[str(p) for p in parts]])


def get_redis() -> Optional[redis.Redis]:
    """Shared client, or None when caching is off."""
    global _client
    if not REDIS_URL:
        return None
    if _client is None:
        try:
            _client = redis.Redis.from_url(
                REDIS_URL,
                decode_responses=True,
                socket_timeout=SOCKET_TIMEOUT_SECONDS,
                socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
            )
        except (redis.RedisError, ValueError) as e:
            logger.warning("Invalid REDIS_URL, cache disabled: %s", e)
            return None
    return _client


def redis_health() -> Dict[str, Any]:
    client = get_redis()
    if client is None:
        return {"enabled": False, "connected": False}
    try:
        return {"enabled": True, "connected": bool(client.ping())}
    except redis.RedisError as e:
        return {"enabled": True, "connected": False, "reason": str(e)}


def get_json(key: str) -> Optional[Dict[str, Any]]:
    client = get_redis()
    if client is None:
        return None
    try:
        raw = client.get(key)
    except redis.RedisError as e:
        logger.warning("Cache read failed for %s: %s", key, e)
        return None
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning("Dropping undecodable cache entry %s", key)
        return None
    return value if isinstance(value, dict) else None


def setex_json(key: str, ttl_seconds: int, value: Dict[str, Any]) -> bool:
    """Store ``value`` for ``ttl_seconds``; False when nothing was written."""
    client = get_redis()
    if client is None or ttl_seconds <= 0:
        return False
    try:
        client.setex(key, int(ttl_seconds), json.dumps(value, ensure_ascii=False))
        return True
    except redis.RedisError as e:
        logger.warning("Cache write failed for %s: %s", key, e)
        return False
