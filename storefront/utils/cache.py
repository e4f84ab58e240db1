import json
import logging
from typing import Any, Optional

import redis

from storefront.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

# Create Redis client (connections are opened lazily)
redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)


class CacheService:
    """
    Redis cache service for storefront product details.

    This service provides methods for:
    - Setting cache with TTL
    - Getting cached values
    - Invalidating cache

    Redis failures are logged and treated as cache misses so that a cache
    outage never fails a request.
    """

    def __init__(self, client: Optional[redis.Redis] = None, ttl: int = None, enabled: bool = True):
        self.client = client or redis_client
        self.ttl = ttl or settings.CACHE_TTL
        self.enabled = enabled

    def _make_key(self, prefix: str, key: str) -> str:
        """Create a namespaced cache key."""
        return f"{prefix}:{key}"

    def get(self, prefix: str, key: str) -> Optional[Any]:
        """
        Get a value from cache.

        Args:
            prefix: Cache key prefix (e.g., 'product')
            key: Unique identifier

        Returns:
            Cached value or None if not found
        """
        if not self.enabled:
            return None
        cache_key = self._make_key(prefix, key)
        try:
            value = self.client.get(cache_key)
            if value:
                return json.loads(value)
            return None
        except (redis.RedisError, json.JSONDecodeError) as e:
            logger.warning(f"Cache read failed for {cache_key}: {e}")
            return None

    def set(self, prefix: str, key: str, value: Any, ttl: int = None) -> bool:
        """
        Set a value in cache with TTL.

        Returns:
            True if successful, False otherwise
        """
        if not self.enabled:
            return False
        cache_key = self._make_key(prefix, key)
        ttl = ttl or self.ttl
        try:
            serialized = json.dumps(value, default=str)
            self.client.setex(cache_key, ttl, serialized)
            return True
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"Cache write failed for {cache_key}: {e}")
            return False

    def delete(self, prefix: str, key: str) -> bool:
        """Delete a value from cache."""
        if not self.enabled:
            return False
        cache_key = self._make_key(prefix, key)
        try:
            self.client.delete(cache_key)
            return True
        except redis.RedisError as e:
            logger.warning(f"Cache delete failed for {cache_key}: {e}")
            return False

    def delete_many(self, prefix: str, keys) -> int:
        """Delete several keys under one prefix in a single round-trip."""
        cache_keys = [self._make_key(prefix, str(key)) for key in keys]
        if not self.enabled or not cache_keys:
            return 0
        try:
            return self.client.delete(*cache_keys)
        except redis.RedisError as e:
            logger.warning(f"Cache delete failed for {len(cache_keys)} keys: {e}")
            return 0

    def ping(self) -> bool:
        return bool(self.client.ping())


# Singleton cache service instance
cache_service = CacheService(enabled=settings.CACHE_ENABLED)
