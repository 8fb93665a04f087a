"""Redis cache service for dashboard statistics."""

import json
import logging
from typing import Optional, Any

import redis

from reserve_api.core.config import settings

logger = logging.getLogger("reserve_api.cache")

PERSONNEL_STATS_KEY = "stats:personnel"
DASHBOARD_STATS_KEY = "stats:dashboard"


class CacheService:
    """Redis-backed caching service. Every failure is a cache miss."""

    def __init__(self):
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=1,
                socket_timeout=1,
            )
        return self._client

    def get_json(self, key: str) -> Optional[Any]:
        """Get and parse a JSON cached value."""
        try:
            raw = self.client.get(key)
        except redis.RedisError:
            return None
        if raw:
            return json.loads(raw)
        return None

    def set_json(self, key: str, value: Any, ttl_seconds: int = 60) -> None:
        """Serialize and cache a JSON value with TTL."""
        try:
            self.client.setex(key, ttl_seconds, json.dumps(value, default=str))
        except redis.RedisError:
            logger.debug("Cache write skipped for %s", key)

    def delete(self, *keys: str) -> None:
        """Delete cached keys."""
        try:
            self.client.delete(*keys)
        except redis.RedisError:
            logger.debug("Cache delete skipped for %s", keys)

    def invalidate_stats(self) -> None:
        """Drop every cached statistic derived from the personnel directory."""
        self.delete(PERSONNEL_STATS_KEY, DASHBOARD_STATS_KEY)

    def health_check(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


cache_service = CacheService()
