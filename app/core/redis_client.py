import json
import time
from typing import Any, Dict, Optional, Tuple

import redis
from loguru import logger

from app.core.config import settings


class MockRedis:
    """In-process stand-in used when no Redis server is reachable"""

    def __init__(self):
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}

    def _alive(self, key: str):
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= time.monotonic():
            self._data.pop(key, None)
            return None
        return item

    def get(self, key: str):
        item = self._alive(key)
        return item[0] if item else None

    def set(self, key: str, value: Any, ex: int = None):
        expires_at = time.monotonic() + ex if ex else None
        self._data[key] = (value, expires_at)
        return True

    def delete(self, key: str):
        return self._data.pop(key, None) is not None

    def exists(self, key: str):
        return self._alive(key) is not None

    def ping(self):
        return True

    def flushall(self):
        self._data.clear()
        return True


def _connect():
    try:
        client = redis.from_url(settings.redis_url, decode_responses=True, socket_connect_timeout=1)
        client.ping()
        logger.info("Connected to Redis cache")
        return client
    except (redis.exceptions.RedisError, OSError) as e:
        logger.warning(f"Redis not available ({e}); using in-process cache")
        return MockRedis()


redis_client = _connect()


def get_redis():
    return redis_client


def redis_status() -> str:
    return "memory" if isinstance(redis_client, MockRedis) else "connected"


def cache_get_json(key: str) -> Optional[Any]:
    try:
        raw = redis_client.get(key)
    except redis.exceptions.RedisError as e:
        logger.warning(f"Cache read failed for {key}: {e}")
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return None


def cache_set_json(key: str, value: Any, ttl_seconds: int):
    try:
        redis_client.set(key, json.dumps(value), ex=ttl_seconds)
    except redis.exceptions.RedisError as e:
        logger.warning(f"Cache write failed for {key}: {e}")
