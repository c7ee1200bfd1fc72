"""
Response cache backed by Redis.

Cache-aside storage for API responses. Redis is optional: when it is not
configured or not reachable, the API runs without a cache and nothing else
changes.

Design:
- Every Redis error is logged and treated as a miss / no-op
- Values are JSON documents stored with a TTL (SETEX)
- Keys are built from method + path + query string
"""

import json
import logging
from typing import Any, Optional

import redis

from backend.utils.retry import RetryExhausted, RetryPolicy

logger = logging.getLogger(__name__)

KEY_PREFIX = "cache:"
DEFAULT_TTL = 300


def cache_key(method: str, full_path: str) -> str:
    """
    Build the cache key for a request.

    Args:
        method: HTTP method (e.g. 'GET')
        full_path: Path including query string (e.g. '/trackers/p1?limit=5')

    Returns:
        str: e.g. 'cache:GET:/trackers/p1?limit=5'
    """
    # Flask's full_path ends with '?' when there is no query string
    path = full_path[:-1] if full_path.endswith('?') else full_path
    return f"{KEY_PREFIX}{method.upper()}:{path}"


class ResponseCache:
    """
    JSON cache over a redis-py client.

    Args:
        client: redis.Redis (or anything with get/setex/delete/scan_iter)
        default_ttl: TTL in seconds when set() is called without one
    """

    def __init__(self, client, default_ttl: int = DEFAULT_TTL):
        self.client = client
        self.default_ttl = default_ttl
        self._ready = client is not None

    @property
    def is_ready(self) -> bool:
        return self._ready

    def get(self, key: str) -> Optional[Any]:
        """Return the cached JSON value, or None on miss/error."""
        if not self._ready:
            return None
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache get error: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Dropping undecodable cache entry {key}")
            self.delete(key)
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self._ready:
            return False
        try:
            self.client.setex(key, ttl or self.default_ttl, json.dumps(value))
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"Cache set error: {e}")
            return False
        logger.debug(f"Cached response for {key}")
        return True

    def delete(self, key: str) -> bool:
        if not self._ready:
            return False
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Cache delete error: {e}")
            return False
        return True

    def clear(self, pattern: str = "*") -> bool:
        """
        Delete every key matching pattern.

        Returns:
            bool: False if the cache is unavailable or Redis failed
        """
        if not self._ready:
            return False
        try:
            keys = list(self.client.scan_iter(match=pattern))
            if keys:
                self.client.delete(*keys)
                logger.info(f"Cleared {len(keys)} cache entries")
        except redis.RedisError as e:
            logger.warning(f"Cache clear error: {e}")
            return False
        return True

    def close(self) -> None:
        if self.client is not None:
            try:
                self.client.close()
                logger.info("Redis connection closed")
            except redis.RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")
        self._ready = False


def connect_cache(redis_url: Optional[str], default_ttl: int = DEFAULT_TTL,
                  retry_policy: Optional[RetryPolicy] = None,
                  client_factory=redis.Redis.from_url, **call_kwargs) -> Optional[ResponseCache]:
    """
    Connect to Redis, returning None when it is not configured or reachable.

    Args:
        redis_url: e.g. 'redis://localhost:6379' (None disables caching)
        default_ttl: Default TTL for cached responses
        retry_policy: Backoff for the initial PING
        client_factory: Builds a client from a URL (injected in tests)
        **call_kwargs: Forwarded to RetryPolicy.call (sleep, clock)

    Returns:
        ResponseCache or None
    """
    if not redis_url:
        logger.info("REDIS_URL not set (running without cache)")
        return None

    policy = retry_policy or RetryPolicy()
    logger.info("Connecting to Redis...")
    try:
        client = client_factory(redis_url, socket_connect_timeout=3)
    except (ValueError, redis.RedisError) as e:
        # Unsupported URL scheme or malformed URL
        logger.warning(f"Redis client could not be created (running without cache): {e}")
        return None

    try:
        policy.call(client.ping, retry_on=(redis.RedisError,), description="Redis connect", **call_kwargs)
    except RetryExhausted as e:
        logger.warning(f"Redis connection failed (running without cache): {e.last_error}")
        return None

    logger.info("Redis connected successfully")
    return ResponseCache(client, default_ttl=default_ttl)
