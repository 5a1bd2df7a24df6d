# common/cache.py
import json
import logging
import os
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Return a Redis client if REDIS_URL is configured, otherwise None.

    Caching is switched off (None is returned) when Redis is not reachable,
    so callers always fall back to the database.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        return None

    try:
        client = redis.from_url(redis_url, decode_responses=True)
        client.ping()
    except redis.RedisError as exc:
        logger.warning("Redis unavailable at %s, caching disabled: %s", redis_url, exc)
        return None

    _redis_client = client
    return _redis_client


def get_cached_json(key: str) -> Optional[Any]:
    client = get_redis_client()
    if client is None:
        return None

    try:
        raw = client.get(key)
    except redis.RedisError as exc:
        logger.warning("Cache read failed for %s: %s", key, exc)
        return None
    if raw is None:
        return None
    return json.loads(raw)


def set_cached_json(key: str, value: Any, ttl_seconds: int = 60) -> None:
    client = get_redis_client()
    if client is None:
        return

    try:
        client.setex(key, ttl_seconds, json.dumps(value, default=str))
    except redis.RedisError as exc:
        logger.warning("Cache write failed for %s: %s", key, exc)


def delete_prefix(prefix: str) -> None:
    """
    Delete all keys starting with prefix.
    Example: prefix='bookings:slots:3:' or 'rooms:'.
    """
    client = get_redis_client()
    if client is None:
        return

    try:
        for k in client.scan_iter(prefix + "*"):
            client.delete(k)
    except redis.RedisError as exc:
        logger.warning("Cache invalidation failed for %s*: %s", prefix, exc)


def get_version(name: str) -> int:
    """
    Current value of a generation counter, 0 when unset or when caching
    is off. Embed it in cache keys so that bump_version() retires every
    key built from an older generation.
    """
    client = get_redis_client()
    if client is None:
        return 0

    try:
        raw = client.get(name)
    except redis.RedisError as exc:
        logger.warning("Cache version read failed for %s: %s", name, exc)
        return 0
    return int(raw) if raw is not None else 0


def bump_version(name: str) -> None:
    client = get_redis_client()
    if client is None:
        return

    try:
        client.incr(name)
    except redis.RedisError as exc:
        logger.warning("Cache version bump failed for %s: %s", name, exc)
